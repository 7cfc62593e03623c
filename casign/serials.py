""" serial number policies

A CA must never issue two certificates with the same serial number. Which
strategy guarantees that depends on the deployment, so the builder asks a
policy object for every new serial. Anything with a ``next_serial()`` method
returning a positive int (at most 159 bits, RFC 5280 §4.1.2.2) will do.
"""
import threading

from cryptography import x509


class RandomSerial:
    """ 159 bits of randomness; the default, needs no state """

    name = "random"

    def next_serial(self):
        return x509.random_serial_number()


class CounterSerial:
    """
    Monotonically increasing serial numbers, starting at ``start``. Thread
    safe. The counter lives in memory only, so a host that restarts must pass
    the next free value as ``start``.
    """

    name = "counter"

    def __init__(self, start=1):
        self._next = start
        self._lock = threading.Lock()

    def next_serial(self):
        with self._lock:
            serial = self._next
            self._next += 1
        return serial


class FixedSerial:
    """
    Always hands out the same caller supplied serial number. Only sensible
    when the host assigns a fresh policy per request, e.g. from a database
    sequence.
    """

    name = "fixed"

    def __init__(self, serial):
        self.serial = serial

    def next_serial(self):
        return self.serial


POLICIES = {cls.name: cls for cls in (RandomSerial, CounterSerial, FixedSerial)}
