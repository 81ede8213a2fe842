"""Test doubles: a scripted transport and a recording sink"""
import errno

from core.errors import SubmitError
from core.sink import EventSink


class FakeTransport:
    """Holds submitted transfers until the test completes them.

    Kill semantics match the real transport: the in-flight transfer is
    completed with ENOENT, resubmission from that callback is refused with
    EPERM, and nothing is in flight once ``kill`` returns.
    """

    def __init__(self):
        self.in_flight = {}
        self.submitted = []  # (name, request) in submission order
        self.fail_next = {}  # transfer name -> errno for the next submit
        self._killing = set()
        self.released = False
        self.alive = True

    def submit(self, transfer):
        code = self.fail_next.pop(transfer.name, None)
        if code is not None:
            raise SubmitError(code, f"{transfer.name}: scripted failure")
        if id(transfer) in self._killing:
            raise SubmitError(errno.EPERM, f"{transfer.name}: being killed")
        if id(transfer) in self.in_flight:
            raise SubmitError(errno.EBUSY, f"{transfer.name}: already submitted")
        self.in_flight[id(transfer)] = transfer
        self.submitted.append((transfer.name, transfer.request))

    def kill(self, transfer):
        if id(transfer) not in self.in_flight:
            return
        self._killing.add(id(transfer))
        try:
            self._deliver(transfer, errno.ENOENT, b"")
        finally:
            self._killing.discard(id(transfer))

    def release(self):
        for transfer in list(self.in_flight.values()):
            self.kill(transfer)
        self.released = True

    def pending(self, name):
        for transfer in self.in_flight.values():
            if transfer.name == name:
                return transfer
        return None

    def complete(self, name, status=0, payload=b""):
        """Deliver a completion for the in-flight transfer called ``name``.

        Returns False when nothing by that name is in flight.
        """
        transfer = self.pending(name)
        if transfer is None:
            return False
        self._deliver(transfer, status, payload)
        return True

    def _deliver(self, transfer, status, payload):
        del self.in_flight[id(transfer)]
        n = min(len(payload), len(transfer.buffer))
        transfer.buffer[:n] = payload[:n]
        transfer.actual_length = n
        transfer.status = status
        transfer.complete(transfer)


class RecordingSink(EventSink):
    def __init__(self):
        super().__init__()
        self.events = []

    def _emit_axis(self, name, value):
        self.events.append(("axis", name, value))

    def _emit_button(self, name, pressed):
        self.events.append(("button", name, pressed))

    def _flush(self):
        self.events.append(("sync",))

    def syncs(self):
        return sum(1 for e in self.events if e == ("sync",))
