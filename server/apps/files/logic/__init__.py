"""Business logic layer for files app.

- ``record_operations``: create, finalize, query, update, delete records
- ``binding_operations``: the file to event relation
- ``lifecycle``: record creation tied to upload provisioning
- ``discovery_operations``: reference counts and the event cascade

Views and message handlers call into this package; it never imports
from them.
"""
