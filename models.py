from datetime import datetime
from extensions import db
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

DEFAULT_PROFILE_PHOTO = '/images/default-profile-photo.jpg'


class User(UserMixin, db.Model):
    """Operator account. Owns a scoped set of customer bookings."""
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    surname = db.Column(db.String(100), nullable=False)
    username = db.Column(db.String(64), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    profile_photo = db.Column(db.String(255), default=DEFAULT_PROFILE_PHOTO)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Bookings are never cascaded away with their operator
    customers = db.relationship('Customer', backref='user', lazy='dynamic', passive_deletes='all')

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        """Convert operator to dictionary for API responses"""
        return {
            'id': self.id,
            'name': self.name,
            'surname': self.surname,
            'username': self.username,
            'profile_photo': self.profile_photo or DEFAULT_PROFILE_PHOTO,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f'<User {self.username}>'


class Customer(db.Model):
    """A guest's stay in one room, owned by the operator who registered it."""
    __tablename__ = 'customer'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='RESTRICT'), nullable=False, index=True)

    # Guest information
    name = db.Column(db.String(100), nullable=False)
    mobile_number = db.Column(db.String(15), nullable=False)
    nationality = db.Column(db.String(100), nullable=False)
    gender = db.Column(db.String(20), nullable=False)
    id_document = db.Column(db.String(50), nullable=False)
    address = db.Column(db.Text, nullable=False)
    birth_date = db.Column(db.Date, nullable=False)

    # Room
    bed_type = db.Column(db.String(50), nullable=False)
    room_type = db.Column(db.String(50), nullable=False)
    room_number = db.Column(db.String(20), nullable=False)

    # Stay and billing
    check_in = db.Column(db.DateTime, nullable=False)
    check_out = db.Column(db.DateTime, nullable=False)
    rate_per_day = db.Column(db.Numeric(18, 2), nullable=False)
    total_bill = db.Column(db.Numeric(18, 2), nullable=False, default=0)
    is_checked_out = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        # At most one active booking per operator and room
        db.Index(
            'uq_customer_active_room', 'user_id', 'room_number',
            unique=True,
            sqlite_where=db.text('is_checked_out = 0'),
            postgresql_where=db.text('is_checked_out = false'),
        ),
        db.CheckConstraint('rate_per_day > 0', name='ck_customer_rate_positive'),
    )

    @property
    def is_active(self):
        """Guest is still in the hotel"""
        return not self.is_checked_out

    def to_dict(self):
        """Convert booking to dictionary for API responses"""
        return {
            'id': self.id,
            'user_id': self.user_id,
            'name': self.name,
            'mobile_number': self.mobile_number,
            'nationality': self.nationality,
            'gender': self.gender,
            'id_document': self.id_document,
            'address': self.address,
            'birth_date': self.birth_date.isoformat() if self.birth_date else None,
            'bed_type': self.bed_type,
            'room_type': self.room_type,
            'room_number': self.room_number,
            'check_in': self.check_in.isoformat() if self.check_in else None,
            'check_out': self.check_out.isoformat() if self.check_out else None,
            'rate_per_day': f'{self.rate_per_day:.2f}' if self.rate_per_day is not None else None,
            'total_bill': f'{self.total_bill:.2f}' if self.total_bill is not None else '0.00',
            'is_checked_out': self.is_checked_out,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f'<Customer {self.id} room {self.room_number}>'
