import os
import re
import uuid
import logging

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_user, logout_user, login_required
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.utils import secure_filename

from api_routes import create_access_token, request_data
from extensions import db, login_manager
from models import User, DEFAULT_PROFILE_PHOTO

logger = logging.getLogger(__name__)

account_bp = Blueprint('account', __name__)

PASSWORD_POLICY_MESSAGE = (
    'Password must contain at least one uppercase letter, one special character, '
    'one number, and be at least 8 characters long.'
)
INVALID_LOGIN_MESSAGE = 'Invalid input, please try again.'

ALLOWED_PHOTO_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.gif'}
MAX_PHOTO_BYTES = 5 * 1024 * 1024
PHOTO_URL_PREFIX = '/uploads/profiles/'
DEFAULT_PHOTO_NAMES = ('Logo.jpg', 'default-profile-photo.jpg')


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


def is_valid_password(password):
    """At least 8 characters with an uppercase letter, a special character and a digit."""
    if not password or len(password) < 8:
        return False
    return bool(
        re.search(r'[A-Z]', password)
        and re.search(r'[\W_]', password)
        and re.search(r'\d', password)
    )


def _field(data, key):
    value = data.get(key)
    return value.strip() if isinstance(value, str) else ''


def _error(message, status_code=400):
    return jsonify({'success': False, 'message': message}), status_code


def _commit_or_error(action):
    try:
        db.session.commit()
        return None
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(f"[{action}] Database error")
        return _error(f'{action.capitalize()} failed. Please try again later.', 500)


# ----------------- AUTHENTICATION ------------------------

@account_bp.route('/signup', methods=['POST'])
def signup():
    data = request_data()
    name = _field(data, 'name')
    surname = _field(data, 'surname')
    username = _field(data, 'username')
    password = data.get('password') or ''
    confirm_password = data.get('confirm_password') or ''

    if not all([name, surname, username, password, confirm_password]):
        return _error('All fields are required.')

    if not is_valid_password(password):
        return _error(PASSWORD_POLICY_MESSAGE)

    if password != confirm_password:
        return _error('Passwords do not match.')

    if User.query.filter_by(username=username).first():
        logger.info(f"[SIGNUP] Username already taken: {username}")
        return _error('Username already exists.')

    new_user = User(name=name, surname=surname, username=username, profile_photo=DEFAULT_PROFILE_PHOTO)
    new_user.set_password(password)
    db.session.add(new_user)

    failure = _commit_or_error('signup')
    if failure:
        return failure

    # Automatically log in the user after signup
    login_user(new_user)
    logger.info(f"[SIGNUP] User created successfully: {username}")

    return jsonify({
        'success': True,
        'message': 'Registration successful!',
        'token': create_access_token(new_user),
        'user': new_user.to_dict()
    }), 201


@account_bp.route('/login', methods=['POST'])
def login():
    data = request_data()
    username = _field(data, 'username')
    password = data.get('password') or ''

    # One message for every failure so usernames cannot be probed
    if not username or not is_valid_password(password):
        return _error(INVALID_LOGIN_MESSAGE, 401)

    user = User.query.filter_by(username=username).first()
    if not user or not user.check_password(password):
        logger.info(f"[LOGIN] Invalid credentials for: {username}")
        return _error(INVALID_LOGIN_MESSAGE, 401)

    login_user(user)
    logger.info(f"[LOGIN] Login successful for: {username}")

    return jsonify({
        'success': True,
        'message': 'Login successful',
        'token': create_access_token(user),
        'user': user.to_dict()
    }), 200


@account_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'success': True, 'message': 'Logged out'})


@account_bp.route('/forgot-password', methods=['POST'])
def forgot_password():
    data = request_data()
    username = _field(data, 'username')
    new_password = data.get('new_password') or ''
    confirm_new_password = data.get('confirm_new_password') or ''

    if not username or not new_password or not confirm_new_password:
        return _error('All fields are required.')

    if not is_valid_password(new_password):
        return _error(PASSWORD_POLICY_MESSAGE)

    if new_password != confirm_new_password:
        return _error('Passwords do not match.')

    user = User.query.filter_by(username=username).first()
    if user is None:
        return _error('Username not found.', 404)

    user.set_password(new_password)
    failure = _commit_or_error('password reset')
    if failure:
        return failure

    logger.info(f"[RESET] Password reset for: {username}")
    return jsonify({
        'success': True,
        'message': 'Password reset successfully. You can now login with your new password.'
    })


# ----------------- PROFILE ------------------------

@account_bp.route('/profile', methods=['GET'])
@login_required
def profile():
    return jsonify({'success': True, 'user': current_user.to_dict()})


@account_bp.route('/profile/name', methods=['POST'])
@login_required
def change_name():
    full_name = _field(request_data(), 'full_name')
    if not full_name:
        return _error('Name cannot be empty.')
    if len(full_name) > 100:
        return _error('Name must be at most 100 characters.')

    current_user.name = full_name
    failure = _commit_or_error('name update')
    if failure:
        return failure

    return jsonify({'success': True, 'message': 'Name updated successfully.', 'user': current_user.to_dict()})


@account_bp.route('/profile/username', methods=['POST'])
@login_required
def change_username():
    username = _field(request_data(), 'username')
    if not username:
        return _error('Username cannot be empty.')

    if User.query.filter(User.username == username, User.id != current_user.id).first():
        return _error('Username already exists.')

    current_user.username = username
    failure = _commit_or_error('username update')
    if failure:
        return failure

    logger.info(f"User {current_user.id} changed username to {username}")
    return jsonify({'success': True, 'message': 'Username updated successfully.', 'user': current_user.to_dict()})


@account_bp.route('/profile/password', methods=['POST'])
@login_required
def change_password():
    data = request_data()
    current_password = data.get('current_password') or ''
    new_password = data.get('new_password') or ''

    if not current_password or not new_password:
        return _error('Both current and new passwords are required.')

    if not current_user.check_password(current_password):
        return _error('Current password is incorrect.')

    if not is_valid_password(new_password):
        return _error(PASSWORD_POLICY_MESSAGE)

    current_user.set_password(new_password)
    failure = _commit_or_error('password update')
    if failure:
        return failure

    return jsonify({'success': True, 'message': 'Password updated successfully.'})


def _discard_file(file_path):
    try:
        if os.path.exists(file_path):
            os.remove(file_path)
    except OSError:
        logger.exception(f"Could not remove profile photo file {file_path}")


def _remove_old_photo(photo_path):
    if not photo_path or not photo_path.startswith(PHOTO_URL_PREFIX):
        return
    if any(name in photo_path for name in DEFAULT_PHOTO_NAMES):
        return
    _discard_file(os.path.join(current_app.config['UPLOAD_FOLDER'], os.path.basename(photo_path)))


@account_bp.route('/profile/photo', methods=['POST'])
@login_required
def change_photo():
    photo = request.files.get('profile_photo')
    if photo is None or not photo.filename:
        return _error('Please select a valid image file.')

    extension = os.path.splitext(secure_filename(photo.filename))[1].lower()
    if extension not in ALLOWED_PHOTO_EXTENSIONS:
        return _error('Only image files (JPG, JPEG, PNG, GIF) are allowed.')

    photo.stream.seek(0, os.SEEK_END)
    size = photo.stream.tell()
    photo.stream.seek(0)
    if size == 0:
        return _error('Please select a valid image file.')
    if size > MAX_PHOTO_BYTES:
        return _error('File size must be less than 5MB.')

    upload_folder = current_app.config['UPLOAD_FOLDER']
    unique_name = f'{uuid.uuid4()}{extension}'
    file_path = os.path.join(upload_folder, unique_name)
    try:
        os.makedirs(upload_folder, exist_ok=True)
        photo.save(file_path)
    except OSError:
        logger.exception(f"Profile photo upload failed for user {current_user.id}")
        return _error('An error occurred while uploading the file.', 500)

    old_photo = current_user.profile_photo
    current_user.profile_photo = PHOTO_URL_PREFIX + unique_name
    failure = _commit_or_error('photo update')
    if failure:
        _discard_file(file_path)
        return failure

    _remove_old_photo(old_photo)
    logger.info(f"User {current_user.id} updated profile photo")
    return jsonify({
        'success': True,
        'message': 'Profile photo updated successfully.',
        'user': current_user.to_dict()
    })
