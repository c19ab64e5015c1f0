"""Tests for broker message dispatch."""

import uuid
from http import HTTPStatus

import pytest

from server.apps.files.logic.record_operations import finalize_record
from server.apps.files.models import EventBinding, FileRecord
from server.apps.messaging.dispatcher import MessageDispatcher
from server.apps.messaging.health import RequestTracker


@pytest.fixture
def tracker():
    """Request tracker with room for every test's requests.

    Returns:
        Empty RequestTracker.
    """
    return RequestTracker(50)


@pytest.fixture
def dispatcher(upload_gateway, tracker):
    """Dispatcher wired to the test gateway.

    Returns:
        MessageDispatcher recording outcomes in ``tracker``.
    """
    return MessageDispatcher(upload_gateway, tracker=tracker)


def _request(intention, user_id='alice', **fields):
    return {
        'msg_id': 7,
        'msg_intention': intention,
        'userID': user_id,
        **fields,
    }


def _create(dispatcher, **fields):
    payload = {'name': 'report', 'filename': 'report.pdf', 'size': 1000}
    payload.update(fields)
    return dispatcher.dispatch(
        'file.details.create',
        _request('CREATE', **payload),
    )


@pytest.mark.django_db
class TestDetails:
    """Record requests on ``file.details.*``."""

    def test_create(self, dispatcher):
        """Create replies with the id and an upload URI."""
        response = _create(dispatcher, contentType='application/pdf')

        assert response['status'] == HTTPStatus.OK
        assert response['msg_id'] == 7
        assert response['msg_intention'] == 'CREATE'
        assert response['userID'] == 'alice'
        assert response['uploadURI'].startswith('http://files.test/upload/')

        record = FileRecord.objects.get(id=response['result'][0])
        assert record.owner == 'alice'
        assert record.content_type == 'application/pdf'

    def test_create_negative_size_is_invalid_structure(self, dispatcher):
        """Schema violations are rejected with 405."""
        response = _create(dispatcher, size=-1)

        assert response['status'] == HTTPStatus.METHOD_NOT_ALLOWED
        assert response['result'] == ['invalid message structure']
        assert 'uploadURI' not in response
        assert FileRecord.objects.count() == 0

    def test_read_by_id(self, dispatcher):
        """Read returns serialized records with their events."""
        record_id = _create(dispatcher)['result'][0]
        EventBinding.objects.create(file_id=record_id, event_id='ev1')

        response = dispatcher.dispatch(
            'file.details.read',
            _request('READ', id=record_id),
        )

        assert response['status'] == HTTPStatus.OK
        [serialized] = response['result']
        assert serialized['id'] == record_id
        assert serialized['filename'] == 'report.pdf'
        assert serialized['events'] == ['ev1']
        assert serialized['downloadURL'] is None
        assert isinstance(serialized['createdAt'], int)

    def test_read_complete_record_has_download_url(self, dispatcher):
        """Records with bytes carry their download URL."""
        record_id = _create(dispatcher)['result'][0]
        finalize_record(record_id, 'uploads/abc', 'r.pdf', 'x/y', '')

        response = dispatcher.dispatch(
            'file.details.read',
            _request('READ', id=record_id),
        )

        assert response['result'][0]['downloadURL'] == (
            'http://files.test/download/abc'
        )

    def test_read_created_at_round_trip(self, dispatcher):
        """createdAt from a read finds the same record again."""
        record_id = _create(dispatcher)['result'][0]
        read = dispatcher.dispatch('file.details.read', _request('READ'))
        created_at = read['result'][0]['createdAt']

        response = dispatcher.dispatch(
            'file.details.read',
            _request('READ', createdAt=created_at),
        )

        assert [found['id'] for found in response['result']] == [record_id]

    def test_read_malformed_id(self, dispatcher):
        """Malformed ids are 400 with a message."""
        response = dispatcher.dispatch(
            'file.details.read',
            _request('READ', id='nope'),
        )

        assert response['status'] == HTTPStatus.BAD_REQUEST
        assert response['result'] == ["Invalid ID: 'nope'"]

    def test_update(self, dispatcher):
        """Update changes the name."""
        record_id = _create(dispatcher)['result'][0]

        response = dispatcher.dispatch(
            'file.details.update',
            _request('UPDATE', id=record_id, name='renamed'),
        )

        assert response['status'] == HTTPStatus.OK
        assert response['result'] == [record_id]
        assert FileRecord.objects.get(id=record_id).name == 'renamed'

    def test_update_nothing(self, dispatcher):
        """An update without changes is 400."""
        record_id = _create(dispatcher)['result'][0]

        response = dispatcher.dispatch(
            'file.details.update',
            _request('UPDATE', id=record_id),
        )

        assert response['status'] == HTTPStatus.BAD_REQUEST

    def test_delete(self, dispatcher):
        """Delete removes the record."""
        record_id = _create(dispatcher)['result'][0]

        response = dispatcher.dispatch(
            'file.details.delete',
            _request('DELETE', id=record_id),
        )

        assert response['status'] == HTTPStatus.OK
        assert FileRecord.objects.count() == 0

    def test_delete_missing(self, dispatcher):
        """Deleting an unknown record is 404."""
        response = dispatcher.dispatch(
            'file.details.delete',
            _request('DELETE', id=str(uuid.uuid4())),
        )

        assert response['status'] == HTTPStatus.NOT_FOUND


@pytest.mark.django_db
class TestBindings:
    """Binding requests on ``file.events.*``."""

    def test_report_scenario(self, dispatcher):
        """Bind, read and unbind one event on one file."""
        record_id = _create(dispatcher)['result'][0]

        bound = dispatcher.dispatch(
            'file.events.create',
            _request('CREATE', fileID=record_id, eventIDs=['ev1']),
        )
        assert bound['status'] == HTTPStatus.OK
        assert bound['result'] is True

        read = dispatcher.dispatch(
            'file.details.read',
            _request('READ', id=record_id),
        )
        assert read['result'][0]['events'] == ['ev1']

        dispatcher.dispatch(
            'file.events.delete',
            _request('DELETE', fileID=record_id, eventIDs=['ev1']),
        )
        listed = dispatcher.dispatch(
            'file.events.read',
            _request('READ', fileID=record_id),
        )
        assert listed['result'] == []

    def test_by_event_add_and_list(self, dispatcher):
        """Event-addressed requests bind many files at once."""
        first = _create(dispatcher)['result'][0]
        second = _create(dispatcher)['result'][0]

        dispatcher.dispatch(
            'file.events.create',
            _request('CREATE', eventID='ev1', fileIDs=[first, second]),
        )
        response = dispatcher.dispatch(
            'file.events.read',
            _request('READ', eventID='ev1'),
        )

        assert sorted(response['result']) == sorted([first, second])

    def test_by_event_replace(self, dispatcher):
        """UPDATE replaces the files of an event."""
        first = _create(dispatcher)['result'][0]
        second = _create(dispatcher)['result'][0]
        dispatcher.dispatch(
            'file.events.create',
            _request('CREATE', eventID='ev1', fileIDs=[first]),
        )

        dispatcher.dispatch(
            'file.events.update',
            _request('UPDATE', eventID='ev1', fileIDs=[second]),
        )
        response = dispatcher.dispatch(
            'file.events.read',
            _request('READ', eventID='ev1'),
        )

        assert response['result'] == [second]

    def test_owner_only_forbidden(self, dispatcher):
        """ownerOnly applies the requester as owner filter."""
        record_id = _create(dispatcher)['result'][0]

        response = dispatcher.dispatch(
            'file.events.create',
            _request(
                'CREATE',
                user_id='bob',
                fileID=record_id,
                eventIDs=['ev1'],
                ownerOnly=True,
            ),
        )

        assert response['status'] == HTTPStatus.FORBIDDEN
        assert EventBinding.objects.count() == 0

    def test_missing_direction(self, dispatcher):
        """Neither eventID nor fileID is 400."""
        response = dispatcher.dispatch(
            'file.events.read',
            _request('READ'),
        )

        assert response['status'] == HTTPStatus.BAD_REQUEST

    def test_missing_id_list(self, dispatcher):
        """Mutations need the opposite id list."""
        response = dispatcher.dispatch(
            'file.events.create',
            _request('CREATE', eventID='ev1'),
        )

        assert response['status'] == HTTPStatus.BAD_REQUEST
        assert response['result'] == ['Must provide fileIDs']


@pytest.mark.django_db
class TestDiscovery:
    """Discovery and cascade requests."""

    def test_discover_and_cascade_event(self, dispatcher):
        """Counts bound files, then deletes them."""
        record_id = _create(dispatcher)['result'][0]
        dispatcher.dispatch(
            'file.events.create',
            _request('CREATE', eventID='ev1', fileIDs=[record_id]),
        )

        discovered = dispatcher.dispatch(
            'file.discover',
            _request('READ', assetType='event', assetID='ev1'),
        )
        cascaded = dispatcher.dispatch(
            'file.cascade',
            _request('DELETE', assetType='event', assetID='ev1'),
        )

        assert discovered['result'] == [1]
        assert cascaded['result'] == [1]
        assert FileRecord.objects.count() == 0

    def test_unknown_asset_type(self, dispatcher):
        """Unknown entity types are 400."""
        response = dispatcher.dispatch(
            'file.discover',
            _request('READ', assetType='venue', assetID='v1'),
        )

        assert response['status'] == HTTPStatus.BAD_REQUEST


class TestEnvelope:
    """Malformed and unroutable requests."""

    def test_unknown_routing_key(self, dispatcher, tracker):
        """Unknown routing keys are 405 and still answered."""
        response = dispatcher.dispatch('file.unknown', _request('READ'))

        assert response['status'] == HTTPStatus.METHOD_NOT_ALLOWED
        assert response['msg_id'] == 7
        assert tracker.counts() == (1, 0)

    def test_invalid_intention(self, dispatcher):
        """Unknown intentions are invalid structure."""
        response = dispatcher.dispatch(
            'file.details.read',
            _request('PATCH'),
        )

        assert response['status'] == HTTPStatus.METHOD_NOT_ALLOWED

    def test_non_object_payload(self, dispatcher):
        """Bodies that are not JSON objects are rejected."""
        response = dispatcher.dispatch('file.details.read', ['not', 'a', 'dict'])

        assert response['status'] == HTTPStatus.METHOD_NOT_ALLOWED
        assert 'msg_id' not in response

    def test_internal_error_is_generic(self, dispatcher, tracker, monkeypatch):
        """Unexpected errors are 500 without details."""
        def explode(**kwargs):
            raise RuntimeError('secret connection string')

        monkeypatch.setattr(
            'server.apps.messaging.dispatcher.query_records',
            explode,
        )

        response = dispatcher.dispatch('file.details.read', _request('READ'))

        assert response['status'] == HTTPStatus.INTERNAL_SERVER_ERROR
        assert response['result'] == ['internal server error']
        assert tracker.counts() == (0, 1)
