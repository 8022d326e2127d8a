import pytest

from relay import RelayEngine


class RecordingEmitter:
    def __init__(self):
        self.sent = []

    def emit(self, connection_id, event, *args):
        self.sent.append((connection_id, event, args))

    def events_for(self, connection_id):
        return [(event, args) for target, event, args in self.sent if target == connection_id]

    def clear(self):
        self.sent.clear()


@pytest.fixture
def emitter():
    return RecordingEmitter()


@pytest.fixture
def engine(emitter):
    return RelayEngine(emitter)
