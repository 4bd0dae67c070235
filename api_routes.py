import logging
from datetime import datetime, timedelta, timezone
from functools import wraps

import jwt
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user
from sqlalchemy.exc import SQLAlchemyError

import booking_service
from extensions import db
from models import User

logger = logging.getLogger(__name__)

# Create API blueprint
api_bp = Blueprint('api', __name__, url_prefix='/api')

JWT_ALGORITHM = 'HS256'

STATUS_CODES = {
    booking_service.OK: 200,
    booking_service.INVALID: 400,
    booking_service.UNAUTHORIZED: 401,
    booking_service.NOT_FOUND: 404,
    booking_service.ERROR: 500,
}

LIST_FILTERS = ('all', booking_service.FILTER_IN_HOTEL, booking_service.FILTER_CHECKED_OUT)


def request_data():
    """JSON body when one was sent, form fields otherwise."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form


def create_access_token(user):
    token_payload = {
        'user_id': user.id,
        'username': user.username,
        'exp': datetime.now(timezone.utc) + timedelta(days=current_app.config['JWT_EXPIRES_DAYS'])
    }
    return jwt.encode(token_payload, current_app.config['JWT_SECRET_KEY'], algorithm=JWT_ALGORITHM)


def _auth_failure(message='Authentication required'):
    return jsonify({'success': False, 'message': message}), 401


def operator_required(f):
    """
    Resolve the calling operator from a bearer token or the login session.

    The operator id is passed to the view as its first argument; views never
    read identity from ambient state.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = request.headers.get('Authorization')
        if token:
            if token.startswith('Bearer '):
                token = token[7:]
            try:
                data = jwt.decode(token, current_app.config['JWT_SECRET_KEY'], algorithms=[JWT_ALGORITHM])
                operator_id = int(data['user_id'])
            except jwt.ExpiredSignatureError:
                logger.info("Rejected expired token")
                return _auth_failure('Token expired')
            except (jwt.InvalidTokenError, KeyError, TypeError, ValueError):
                logger.info("Rejected invalid token")
                return _auth_failure('Invalid token')

            if db.session.get(User, operator_id) is None:
                logger.warning(f"Token for unknown user {operator_id}")
                return _auth_failure()
        elif current_user.is_authenticated:
            operator_id = current_user.id
        else:
            return _auth_failure()

        return f(operator_id, *args, **kwargs)

    return decorated_function


def _result_response(result, success_code=200):
    body = {'success': result.ok, 'message': result.message}
    if result.booking is not None:
        body['customer'] = result.booking.to_dict()
    if result.errors:
        body['errors'] = result.errors
    status_code = success_code if result.ok else STATUS_CODES[result.status]
    return jsonify(body), status_code


@api_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint"""
    try:
        db.session.execute(db.text('SELECT 1'))
        database = 'connected'
    except SQLAlchemyError:
        logger.exception("Health check could not reach the database")
        return jsonify({'status': 'unhealthy', 'database': 'unavailable'}), 503

    return jsonify({
        'status': 'healthy',
        'database': database,
        'timestamp': datetime.now(timezone.utc).isoformat()
    }), 200


@api_bp.route('/customers', methods=['GET'])
@operator_required
def list_customers(operator_id):
    """List the operator's customers, optionally only in-hotel or checked-out ones"""
    status_filter = request.args.get('filter') or 'all'
    if status_filter not in LIST_FILTERS:
        return jsonify({
            'success': False,
            'message': f"Unknown filter '{status_filter}'. Use one of: {', '.join(LIST_FILTERS)}"
        }), 400

    try:
        customers = booking_service.list_bookings(
            operator_id, None if status_filter == 'all' else status_filter
        )
    except SQLAlchemyError:
        logger.exception(f"Error occurred while retrieving customers for user {operator_id}")
        return jsonify({'success': False, 'message': 'Failed to load customers'}), 500

    return jsonify({
        'success': True,
        'filter': status_filter,
        'customers': [customer.to_dict() for customer in customers]
    })


@api_bp.route('/customers/occupied-rooms', methods=['GET'])
@operator_required
def occupied_rooms(operator_id):
    exclude_id = request.args.get('exclude', type=int)
    try:
        rooms = booking_service.occupied_rooms(operator_id, exclude_id=exclude_id)
    except SQLAlchemyError:
        logger.exception(f"Error occurred while retrieving occupied rooms for user {operator_id}")
        return jsonify({'success': False, 'message': 'Failed to load occupied rooms'}), 500

    return jsonify({'success': True, 'occupied_rooms': rooms})


@api_bp.route('/customers', methods=['POST'])
@operator_required
def register_customer(operator_id):
    result = booking_service.register(operator_id, request_data())
    return _result_response(result, success_code=201)


@api_bp.route('/customers/<int:customer_id>', methods=['GET'])
@operator_required
def get_customer(operator_id, customer_id):
    try:
        customer = booking_service.get_booking(operator_id, customer_id)
    except SQLAlchemyError:
        logger.exception(f"Error occurred while retrieving customer {customer_id} for user {operator_id}")
        return jsonify({'success': False, 'message': 'Failed to load customer'}), 500

    if customer is None:
        logger.warning(f"Customer with ID {customer_id} not found for user {operator_id}")
        return jsonify({'success': False, 'message': booking_service.NOT_FOUND_MESSAGE}), 404
    return jsonify({'success': True, 'customer': customer.to_dict()})


@api_bp.route('/customers/<int:customer_id>', methods=['PUT'])
@operator_required
def edit_customer(operator_id, customer_id):
    result = booking_service.edit(operator_id, customer_id, request_data())
    return _result_response(result)


@api_bp.route('/customers/<int:customer_id>', methods=['DELETE'])
@operator_required
def delete_customer(operator_id, customer_id):
    result = booking_service.delete(operator_id, customer_id)
    return _result_response(result)


@api_bp.route('/customers/<int:customer_id>/checkout', methods=['POST'])
@operator_required
def checkout_customer(operator_id, customer_id):
    result = booking_service.checkout(operator_id, customer_id)
    return _result_response(result)


@api_bp.route('/customers/<int:customer_id>/reactivate', methods=['POST'])
@operator_required
def reactivate_customer(operator_id, customer_id):
    result = booking_service.reactivate(operator_id, customer_id)
    return _result_response(result)
