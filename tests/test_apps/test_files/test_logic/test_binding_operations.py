"""Tests for file to event binding operations."""

import threading
import uuid
from concurrent.futures import ThreadPoolExecutor

import pytest
from django.db import connection
from django.db.models import QuerySet

from server.apps.files.exceptions import (
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
)
from server.apps.files.logic.binding_operations import (
    add_events_to_file,
    add_files_to_event,
    list_events_for_file,
    list_files_for_event,
    remove_events_from_file,
    remove_files_from_event,
    replace_events_for_file,
    replace_files_for_event,
)
from server.apps.files.models import EventBinding, FileRecord


@pytest.mark.django_db
class TestByEvent:
    """Operations addressed by event id."""

    def test_add_skips_missing_files(self, file_record, other_record):
        """Only files that exist end up bound."""
        missing = str(uuid.uuid4())

        add_files_to_event(
            'ev1',
            [str(file_record.id), missing, str(other_record.id)],
        )

        assert sorted(list_files_for_event('ev1')) == sorted([
            str(file_record.id),
            str(other_record.id),
        ])

    def test_add_is_idempotent(self, file_record):
        """Repeating an add never duplicates a binding."""
        file_ids = [str(file_record.id), str(file_record.id)]

        assert add_files_to_event('ev1', file_ids) is True
        assert add_files_to_event('ev1', file_ids) is True

        assert list_files_for_event('ev1') == [str(file_record.id)]
        assert EventBinding.objects.count() == 1

    def test_add_with_malformed_id_changes_nothing(self, file_record):
        """A malformed id rejects the whole request."""
        with pytest.raises(InvalidArgumentError):
            add_files_to_event('ev1', [str(file_record.id), 'garbage'])

        assert EventBinding.objects.count() == 0

    def test_add_rejects_empty_event_id(self, file_record):
        """Event ids must be non-empty strings."""
        with pytest.raises(InvalidArgumentError):
            add_files_to_event('', [str(file_record.id)])

    def test_owner_filter_skips_foreign_files(self, file_record, other_record):
        """By-event operations silently skip other owners' files."""
        add_files_to_event(
            'ev1',
            [str(file_record.id), str(other_record.id)],
            owner='alice',
        )

        assert list_files_for_event('ev1') == [str(file_record.id)]

    def test_remove_missing_binding_is_noop(self, file_record):
        """Removing what is not there succeeds and changes nothing."""
        add_files_to_event('ev1', [str(file_record.id)])

        assert remove_files_from_event('ev2', [str(file_record.id)]) is True

        assert list_files_for_event('ev1') == [str(file_record.id)]

    def test_remove_respects_owner(self, file_record, other_record):
        """Owner-filtered removal leaves other owners' bindings."""
        file_ids = [str(file_record.id), str(other_record.id)]
        add_files_to_event('ev1', file_ids)

        remove_files_from_event('ev1', file_ids, owner='bob')

        assert list_files_for_event('ev1') == [str(file_record.id)]

    def test_replace_sets_exact_files(self, file_record, other_record):
        """Replace leaves exactly the listed files bound."""
        add_files_to_event('ev1', [str(file_record.id)])

        replace_files_for_event('ev1', [str(other_record.id)])

        assert list_files_for_event('ev1') == [str(other_record.id)]
        assert file_record.event_ids() == []

    def test_replace_with_owner_keeps_foreign(self, file_record, other_record):
        """Owner-filtered replace does not unbind other owners' files."""
        add_files_to_event('ev1', [str(other_record.id)])

        replace_files_for_event('ev1', [str(file_record.id)], owner='alice')

        assert sorted(list_files_for_event('ev1')) == sorted([
            str(file_record.id),
            str(other_record.id),
        ])

    def test_list_for_unknown_event_is_empty(self, db):
        """Events nobody bound have no files."""
        assert list_files_for_event('unknown') == []


@pytest.mark.django_db
class TestByFile:
    """Operations addressed by file id."""

    def test_add_and_list(self, file_record):
        """Added events are listed sorted and without duplicates."""
        add_events_to_file(file_record.id, ['ev2', 'ev1', 'ev2'])

        assert list_events_for_file(file_record.id) == ['ev1', 'ev2']

    def test_add_to_missing_file(self, db):
        """An unknown file is NotFound."""
        with pytest.raises(NotFoundError):
            add_events_to_file(str(uuid.uuid4()), ['ev1'])

    def test_add_malformed_file_id(self, db):
        """A malformed file id is invalid."""
        with pytest.raises(InvalidArgumentError):
            add_events_to_file('nope', ['ev1'])

    def test_owner_mismatch_forbidden(self, file_record):
        """By-file operations refuse files of other owners."""
        with pytest.raises(ForbiddenError):
            add_events_to_file(file_record.id, ['ev1'], owner='bob')
        with pytest.raises(ForbiddenError):
            list_events_for_file(file_record.id, owner='bob')

        assert EventBinding.objects.count() == 0

    def test_owner_match_allowed(self, file_record):
        """The owner may change their own file's events."""
        add_events_to_file(file_record.id, ['ev1'], owner='alice')

        assert list_events_for_file(file_record.id, owner='alice') == ['ev1']

    def test_replace_discards_prior(self, file_record):
        """Replace leaves exactly the new set."""
        add_events_to_file(file_record.id, ['old', 'a'])

        replace_events_for_file(file_record.id, ['a', 'b'])

        assert list_events_for_file(file_record.id) == ['a', 'b']

    def test_replace_with_empty_clears(self, file_record):
        """Replacing with nothing unbinds every event."""
        add_events_to_file(file_record.id, ['ev1'])

        replace_events_for_file(file_record.id, [])

        assert list_events_for_file(file_record.id) == []

    def test_remove_missing_is_noop(self, file_record):
        """Removing unbound events succeeds without changes."""
        add_events_to_file(file_record.id, ['ev1'])

        assert remove_events_from_file(file_record.id, ['ev9']) is True

        assert list_events_for_file(file_record.id) == ['ev1']

    def test_remove_bound_event(self, file_record):
        """Removing a bound event drops it from the set."""
        add_events_to_file(file_record.id, ['ev1', 'ev2'])

        remove_events_from_file(file_record.id, ['ev1'])

        assert list_events_for_file(file_record.id) == ['ev2']

    def test_add_and_replace_lock_the_record(self, file_record, monkeypatch):
        """The record row is locked while its bindings are written."""
        locked_models = []
        select_for_update = QuerySet.select_for_update

        def recording_select_for_update(queryset, *args, **kwargs):
            locked_models.append(queryset.model)
            return select_for_update(queryset, *args, **kwargs)

        monkeypatch.setattr(
            QuerySet,
            'select_for_update',
            recording_select_for_update,
        )

        add_events_to_file(file_record.id, ['ev1'])
        replace_events_for_file(file_record.id, ['ev2'])

        assert locked_models == [FileRecord, FileRecord]
        assert list_events_for_file(file_record.id) == ['ev2']


def _create_records(count):
    return [
        str(FileRecord.objects.create(
            owner='alice',
            name=f'file {index}',
            filename=f'file{index}.txt',
            size=1,
        ).id)
        for index in range(count)
    ]


@pytest.mark.django_db
@pytest.mark.parametrize('reverse_order', [False, True])
def test_overlapping_adds_converge_to_union(reverse_order):
    """Adds of overlapping file sets end in their union in any order."""
    first, second, third = _create_records(3)
    batches = [[first, second], [second, third]]
    if reverse_order:
        batches.reverse()

    for batch in batches:
        add_files_to_event('ev', batch)

    assert set(list_files_for_event('ev')) == {first, second, third}
    assert EventBinding.objects.count() == 3


@pytest.mark.django_db(transaction=True)
def test_concurrent_overlapping_adds_converge_to_union():
    """Simultaneous adds from two threads end in the union."""
    if not connection.features.test_db_allows_multiple_connections:
        pytest.skip('test database does not allow concurrent connections')

    first, second, third = _create_records(3)
    barrier = threading.Barrier(2)

    def add_batch(batch):
        barrier.wait()
        try:
            return add_files_to_event('ev', batch)
        finally:
            connection.close()

    with ThreadPoolExecutor(max_workers=2) as executor:
        outcomes = list(executor.map(
            add_batch,
            [[first, second], [second, third]],
        ))

    assert outcomes == [True, True]
    assert set(list_files_for_event('ev')) == {first, second, third}
    assert EventBinding.objects.count() == 3
