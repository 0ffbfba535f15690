# orgpark/utils/exceptions.py
"""
Booking engine error taxonomy.
Every error carries an HTTP status code and a stable machine-readable code;
main.py turns them into JSON responses.
"""


class BookingEngineError(Exception):
    status_code = 400
    default_detail = "Booking request failed."
    default_code = "booking_error"

    def __init__(self, detail: str = None):
        self.detail = detail or self.default_detail
        self.code = self.default_code
        super().__init__(self.detail)


# ── Validation — rejected before any state mutation ─────────────────────────
class ValidationError(BookingEngineError):
    status_code = 422
    default_detail = "Invalid request."
    default_code = "validation_error"


class InvalidWindow(ValidationError):
    default_detail = "Booking end time must be after start time."
    default_code = "invalid_window"


class WindowTooFarAhead(ValidationError):
    default_detail = "Booking starts too far in the future."
    default_code = "window_too_far_ahead"


class WindowInPast(ValidationError):
    default_detail = "Booking start time is in the past."
    default_code = "window_in_past"


class InvalidVehicleNumber(ValidationError):
    default_detail = "Vehicle number format is invalid."
    default_code = "invalid_vehicle_number"


class InvalidAmount(ValidationError):
    default_detail = "Amount must be greater than 0."
    default_code = "invalid_amount"


# ── Lookups ─────────────────────────────────────────────────────────────────
class NotFoundError(BookingEngineError):
    status_code = 404
    default_detail = "Resource not found."
    default_code = "not_found"


class BookingNotFound(NotFoundError):
    default_detail = "Booking not found."
    default_code = "booking_not_found"


class OrganizationNotFound(NotFoundError):
    default_detail = "Organization not found."
    default_code = "organization_not_found"


class LotNotFound(NotFoundError):
    default_detail = "Parking lot not found."
    default_code = "lot_not_found"


class WatchmanNotFound(NotFoundError):
    default_detail = "Watchman not found."
    default_code = "watchman_not_found"


class UserNotFound(NotFoundError):
    default_detail = "User not found."
    default_code = "user_not_found"


class PaymentNotFound(NotFoundError):
    default_detail = "Payment not found."
    default_code = "payment_not_found"


# ── Capacity ────────────────────────────────────────────────────────────────
class CapacityError(BookingEngineError):
    status_code = 409
    default_detail = "Parking capacity unavailable."
    default_code = "capacity_error"


class CapacityExhausted(CapacityError):
    default_detail = "No parking slots left in this lot."
    default_code = "capacity_exhausted"


class BelowOccupied(CapacityError):
    default_detail = "Lot cannot shrink below its occupied slot count."
    default_code = "below_occupied"


class NoCapacity(CapacityError):
    default_detail = "No available slots for the requested time period. All parking lots are full."
    default_code = "no_capacity"


# ── Internal invariant violations — fail closed ─────────────────────────────
class InvariantViolation(BookingEngineError):
    status_code = 500
    default_detail = "Internal booking state is inconsistent."
    default_code = "invariant_violation"


class AssignmentInconsistency(InvariantViolation):
    default_detail = "Lot reports free capacity but every slot is taken."
    default_code = "assignment_inconsistency"


class LedgerInconsistency(InvariantViolation):
    default_detail = "Slot release would exceed lot capacity."
    default_code = "ledger_inconsistency"


# ── State machine ───────────────────────────────────────────────────────────
class StateError(BookingEngineError):
    status_code = 409
    default_detail = "Booking is not in a state that allows this operation."
    default_code = "state_error"


class NotConfirmed(StateError):
    default_detail = "Booking is not confirmed."
    default_code = "not_confirmed"


class NotActive(StateError):
    default_detail = "Booking is not active."
    default_code = "not_active"


class AlreadyStarted(StateError):
    default_detail = "Booking can no longer be cancelled."
    default_code = "already_started"


class WrongOrganization(StateError):
    status_code = 403
    default_detail = "Booking does not belong to this organization."
    default_code = "wrong_organization"


class EntryTooEarly(StateError):
    default_detail = "Booking has not started yet."
    default_code = "entry_too_early"


class CancellationTooLate(StateError):
    default_detail = "Booking starts too soon to be cancelled."
    default_code = "cancellation_too_late"


class InactiveWatchman(StateError):
    status_code = 403
    default_detail = "Watchman account is inactive."
    default_code = "inactive_watchman"


class NotBookingOwner(StateError):
    status_code = 403
    default_detail = "Booking belongs to another user."
    default_code = "not_booking_owner"


# ── Verification ────────────────────────────────────────────────────────────
class VerificationError(BookingEngineError):
    status_code = 400
    default_detail = "QR code could not be verified."
    default_code = "verification_error"


class TokenNotFound(VerificationError):
    status_code = 404
    default_detail = "No booking matches this QR code."
    default_code = "token_not_found"


class TokenExpired(VerificationError):
    status_code = 410
    default_detail = "QR code is no longer valid."
    default_code = "token_expired"


class TokenInvalid(VerificationError):
    default_detail = "QR code is malformed or has been tampered with."
    default_code = "token_invalid"


# ── Payments ────────────────────────────────────────────────────────────────
class PaymentError(BookingEngineError):
    status_code = 409
    default_detail = "Payment could not be applied."
    default_code = "payment_error"


class DuplicateTransaction(PaymentError):
    default_detail = "Transaction id already recorded."
    default_code = "duplicate_transaction"
