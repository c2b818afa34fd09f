# Overview: In-memory courier and POS adapters used in place of the HTTP clients.

from tierstock.adapters import ShipmentBooking
from tierstock.errors import ExternalServiceUnavailable


class FakeCourier:
    """Records calls; set fail_create/fail_cancel to simulate an outage."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.created = []
        self.cancelled = []
        self.waybills = []
        self.fail_create = False
        self.fail_cancel = False

    def create_shipment(self, order):
        if self.fail_create:
            raise ExternalServiceUnavailable("Courier request timed out; result unknown")
        self.created.append(order.id)
        return ShipmentBooking(tracking_number=f"TS{order.id:07d}", courier_order_id=order.order_number)

    def cancel_shipment(self, tracking_number):
        if self.fail_cancel:
            raise ExternalServiceUnavailable("Courier could not cancel the shipment")
        self.cancelled.append(tracking_number)

    def get_waybill(self, tracking_numbers):
        self.waybills.append(list(tracking_numbers))
        return b"%PDF-1.4 fake waybill"


class FakePos:
    """Serves whatever transactions a test puts in `by_day`."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.by_day = {}
        self.fail = False

    def fetch_transactions(self, day):
        if self.fail:
            raise ExternalServiceUnavailable("POS request timed out")
        return list(self.by_day.get(day, []))
