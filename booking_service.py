"""
Booking lifecycle for customer stays.

Every operation takes the calling operator's id explicitly and returns a
BookingResult instead of raising for expected outcomes, so the HTTP layer can
map unauthorized, not found, invalid and store failures without guessing.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from extensions import db
from models import Customer

logger = logging.getLogger(__name__)

# Result statuses
OK = 'ok'
INVALID = 'invalid'
NOT_FOUND = 'not_found'
UNAUTHORIZED = 'unauthorized'
ERROR = 'error'

FILTER_IN_HOTEL = 'in-hotel'
FILTER_CHECKED_OUT = 'checkout'

CENTS = Decimal('0.01')
# Largest amount a Numeric(18, 2) column holds is just below this
MAX_AMOUNT = Decimal('1e16')

# (field, label, max length)
TEXT_FIELDS = [
    ('name', 'Name', 100),
    ('mobile_number', 'Mobile Number', 15),
    ('nationality', 'Nationality', 100),
    ('gender', 'Gender', 20),
    ('id_document', 'ID', 50),
    ('address', 'Address', None),
    ('bed_type', 'Bed Type', 50),
    ('room_type', 'Room Type', 50),
    ('room_number', 'Room Number', 20),
]

ROOM_OCCUPIED = 'Room {} is already occupied.'
ROOM_OCCUPIED_BY_OTHER = 'Room {} is already occupied by another customer.'
NOT_FOUND_MESSAGE = "Customer not found or you don't have permission to access this customer."
SAVE_FAILED = 'An unexpected error occurred while saving the customer.'
INVALID_MESSAGE = 'Please correct the highlighted fields.'


@dataclass
class BookingResult:
    status: str
    booking: Optional[Customer] = None
    errors: Dict[str, List[str]] = field(default_factory=dict)
    message: str = ''

    @property
    def ok(self):
        return self.status == OK


def _unauthorized():
    return BookingResult(UNAUTHORIZED, message='Authentication required')


def _not_found(action, booking_id, owner_id):
    logger.warning(f"Customer {booking_id} not found for user {owner_id} ({action})")
    return BookingResult(NOT_FOUND, message=NOT_FOUND_MESSAGE)


# ----------------- BILLING ------------------------

def calculate_total_bill(check_in, check_out, rate_per_day):
    """
    Bill whole days, rounding any started day up.

    10:00 on day 1 to 11:00 on day 2 is two days. A check-out at or before
    the check-in bills nothing.
    """
    if check_out <= check_in:
        return Decimal('0.00')

    duration = check_out - check_in
    days = duration.days
    if duration.seconds or duration.microseconds:
        days += 1

    return (Decimal(days) * Decimal(rate_per_day)).quantize(CENTS, rounding=ROUND_HALF_UP)


# ----------------- PARSING ------------------------

def _text(data, key):
    value = data.get(key)
    if value is None:
        return ''
    return str(value).strip()


def _parse_datetime(value):
    """Returns a naive UTC datetime, None when absent; raises ValueError when malformed."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _parse_date(value):
    parsed = _parse_datetime(value)
    return parsed.date() if parsed else None


def _parse_rate(value):
    if value is None or isinstance(value, bool):
        return None
    try:
        rate = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not rate.is_finite():
        return None
    if abs(rate) >= MAX_AMOUNT:
        return rate
    return rate.quantize(CENTS, rounding=ROUND_HALF_UP)


def _parse_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'on', 'yes')


# ----------------- VALIDATION ------------------------

def is_room_occupied(owner_id, room_number, exclude_id=None):
    """True when another active booking of this operator holds the room."""
    query = Customer.query.filter_by(user_id=owner_id, room_number=room_number, is_checked_out=False)
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    return query.first() is not None


def validate_customer_input(owner_id, data, exclude_id=None, check_occupancy=True):
    """
    Validate a registration or edit payload.

    Returns (values, errors). All violations are collected so a caller can
    show them together; values is only complete when errors is empty, and
    then carries the computed total_bill.
    """
    values = {}
    errors = {}

    def add_error(key, message):
        errors.setdefault(key, []).append(message)

    for key, label, max_length in TEXT_FIELDS:
        value = _text(data, key)
        if not value:
            add_error(key, f'{label} is required.')
        elif max_length and len(value) > max_length:
            add_error(key, f'{label} must be at most {max_length} characters.')
        values[key] = value

    try:
        values['birth_date'] = _parse_date(data.get('birth_date'))
        if values['birth_date'] is None:
            add_error('birth_date', 'Birth Date is required.')
    except ValueError:
        add_error('birth_date', 'Birth Date must be a valid date.')

    for key, label in (('check_in', 'Check In'), ('check_out', 'Check Out')):
        try:
            values[key] = _parse_datetime(data.get(key))
            if values[key] is None:
                add_error(key, f'{label} date and time is required.')
        except ValueError:
            values[key] = None
            add_error(key, f'{label} date and time must be a valid date and time.')

    if values['check_in'] and values['check_out'] and values['check_out'] <= values['check_in']:
        add_error('check_out', 'Check Out date and time must be after Check In date and time.')

    values['rate_per_day'] = rate = _parse_rate(data.get('rate_per_day'))
    if rate is None or rate <= 0:
        add_error('rate_per_day', 'Rate per Day must be greater than zero.')
    elif rate >= MAX_AMOUNT:
        add_error('rate_per_day', 'Rate per Day is too large.')
    elif 'check_out' not in errors and values['check_in'] and values['check_out']:
        values['total_bill'] = calculate_total_bill(values['check_in'], values['check_out'], rate)
        if values['total_bill'] >= MAX_AMOUNT:
            add_error('rate_per_day', 'Total Bill for this stay is too large. Lower the Rate per Day or shorten the stay.')

    room_number = values['room_number']
    if check_occupancy and room_number and 'room_number' not in errors:
        if is_room_occupied(owner_id, room_number, exclude_id=exclude_id):
            template = ROOM_OCCUPIED if exclude_id is None else ROOM_OCCUPIED_BY_OTHER
            add_error('room_number', template.format(room_number))
            logger.warning(f"Attempted to book already occupied room: {room_number} for user {owner_id}")

    return values, errors


def _invalid(action, errors):
    logger.warning(f"=== {action.upper()} VALIDATION ERRORS ===")
    for key, messages in errors.items():
        for message in messages:
            logger.warning(f"Field: {key}, Error: {message}")
    return BookingResult(INVALID, errors=errors, message=INVALID_MESSAGE)


def _commit(action, room_number=None, occupied_message=ROOM_OCCUPIED):
    """Commit the session. Returns a failure result, or None when the write landed."""
    try:
        db.session.commit()
        return None
    except IntegrityError as exc:
        db.session.rollback()
        detail = str(exc.orig)
        if room_number and ('room_number' in detail or 'uq_customer_active_room' in detail):
            # Lost a race with a concurrent booking of the same room
            logger.warning(f"Active room constraint rejected room {room_number} during {action}")
            return _invalid(action, {'room_number': [occupied_message.format(room_number)]})
        logger.exception(f"Integrity error during {action}")
        return BookingResult(ERROR, message=SAVE_FAILED)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(f"Database error during {action}")
        return BookingResult(ERROR, message=SAVE_FAILED)


# ----------------- QUERIES ------------------------

def get_booking(owner_id, booking_id):
    if owner_id is None:
        return None
    return Customer.query.filter_by(id=booking_id, user_id=owner_id).first()


def list_bookings(owner_id, status_filter=None):
    """All bookings of an operator, optionally only in-hotel or checked-out ones."""
    query = Customer.query.filter_by(user_id=owner_id)
    if status_filter == FILTER_IN_HOTEL:
        query = query.filter_by(is_checked_out=False)
    elif status_filter == FILTER_CHECKED_OUT:
        query = query.filter_by(is_checked_out=True)
    customers = query.order_by(Customer.id).all()
    logger.info(f"Retrieved {len(customers)} customers for user {owner_id} with filter: {status_filter or 'none'}")
    return customers


def occupied_rooms(owner_id, exclude_id=None):
    query = db.session.query(Customer.room_number).filter(
        Customer.user_id == owner_id,
        Customer.is_checked_out.is_(False),
    )
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    return sorted({room for (room,) in query.all() if room})


# ----------------- LIFECYCLE ------------------------

def register(owner_id, data):
    """Register a guest into a room for this operator."""
    if owner_id is None:
        return _unauthorized()

    values, errors = validate_customer_input(owner_id, data)
    if errors:
        return _invalid('customer registration', errors)

    customer = Customer(user_id=owner_id, is_checked_out=False, **values)
    db.session.add(customer)

    failure = _commit('customer registration', room_number=values['room_number'])
    if failure:
        return failure

    logger.info(
        f"Customer {customer.name} successfully registered in room {customer.room_number} "
        f"for user {owner_id} with Total Bill: {customer.total_bill}"
    )
    return BookingResult(
        OK, booking=customer,
        message=f'Customer {customer.name} registered successfully! Total Bill: {customer.total_bill:.2f}'
    )


def edit(owner_id, booking_id, data):
    """Replace a booking's details and recompute its bill."""
    if owner_id is None:
        return _unauthorized()

    customer = get_booking(owner_id, booking_id)
    if customer is None:
        return _not_found('edit', booking_id, owner_id)

    is_checked_out = customer.is_checked_out
    if data.get('is_checked_out') is not None:
        is_checked_out = _parse_bool(data.get('is_checked_out'))

    # A checked-out record does not hold its room
    values, errors = validate_customer_input(
        owner_id, data, exclude_id=customer.id, check_occupancy=not is_checked_out
    )
    if errors:
        return _invalid('edit', errors)

    for key, value in values.items():
        setattr(customer, key, value)
    customer.is_checked_out = is_checked_out

    failure = _commit('edit', room_number=values['room_number'], occupied_message=ROOM_OCCUPIED_BY_OTHER)
    if failure:
        return failure

    logger.info(f"Customer {customer.id} updated successfully for user {owner_id} with Total Bill: {customer.total_bill}")
    return BookingResult(
        OK, booking=customer,
        message=f'Customer {customer.name} has been updated successfully. Total Bill: {customer.total_bill:.2f}'
    )


def checkout(owner_id, booking_id):
    """Mark the guest as checked out. The bill stays as last computed."""
    if owner_id is None:
        return _unauthorized()

    customer = get_booking(owner_id, booking_id)
    if customer is None:
        return _not_found('checkout', booking_id, owner_id)

    customer.is_checked_out = True
    failure = _commit('checkout')
    if failure:
        return failure

    logger.info(f"Customer {booking_id} checked out successfully for user {owner_id}. Total Bill: {customer.total_bill}")
    return BookingResult(
        OK, booking=customer,
        message=f'Customer {customer.name} has been checked out successfully. Total Bill: {customer.total_bill:.2f}'
    )


def reactivate(owner_id, booking_id):
    """Put a checked-out guest back in the hotel, provided the room is still free."""
    if owner_id is None:
        return _unauthorized()

    customer = get_booking(owner_id, booking_id)
    if customer is None:
        return _not_found('reactivate', booking_id, owner_id)

    if not customer.is_checked_out:
        return BookingResult(OK, booking=customer, message=f'Customer {customer.name} is already active.')

    if is_room_occupied(owner_id, customer.room_number, exclude_id=customer.id):
        logger.warning(f"Cannot reactivate customer {booking_id}: room {customer.room_number} is taken for user {owner_id}")
        return _invalid('reactivate', {'room_number': [ROOM_OCCUPIED_BY_OTHER.format(customer.room_number)]})

    customer.is_checked_out = False
    failure = _commit('reactivate', room_number=customer.room_number, occupied_message=ROOM_OCCUPIED_BY_OTHER)
    if failure:
        return failure

    logger.info(f"Customer {booking_id} reactivated for user {owner_id}")
    return BookingResult(
        OK, booking=customer,
        message=f'Customer {customer.name} has been successfully reactivated.'
    )


def delete(owner_id, booking_id):
    if owner_id is None:
        return _unauthorized()

    customer = get_booking(owner_id, booking_id)
    if customer is None:
        return _not_found('delete', booking_id, owner_id)

    name = customer.name
    db.session.delete(customer)
    failure = _commit('delete')
    if failure:
        return failure

    logger.info(f"Customer {booking_id} deleted successfully for user {owner_id}")
    return BookingResult(OK, message=f'Customer {name} has been deleted successfully.')
