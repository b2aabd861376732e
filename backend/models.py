import uuid
from datetime import datetime

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

STATUS_PENDING = 'PENDING'
STATUS_SIGNED = 'SIGNED'
STATUS_REJECTED = 'REJECTED'
STATUSES = (STATUS_PENDING, STATUS_SIGNED, STATUS_REJECTED)


class Boss(db.Model):
    __tablename__ = 'bosses'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    phone_number = db.Column(db.String(30), nullable=False)

    sign_requests = db.relationship('SignRequest', backref='boss')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'phone_number': self.phone_number
        }


class SignRequest(db.Model):
    __tablename__ = 'sign_requests'

    id = db.Column(db.Integer, primary_key=True)
    staff_name = db.Column(db.String(100), nullable=False)
    pdf_path = db.Column(db.String(500), nullable=False)
    original_filename = db.Column(db.String(255))

    # Either a known boss or manually entered details
    boss_id = db.Column(db.Integer, db.ForeignKey('bosses.id'))
    manual_boss_name = db.Column(db.String(100))
    manual_boss_phone = db.Column(db.String(30))

    # [{page, x, y, width, height}, ...] in preview pixels, set once on creation
    sign_area_coords = db.Column(db.JSON, nullable=False)
    preview_width = db.Column(db.Float)

    unique_link = db.Column(db.String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))
    status = db.Column(db.String(20), default=STATUS_PENDING, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    signature = db.relationship('Signature', backref='sign_request', uselist=False, cascade='all, delete-orphan')

    @property
    def boss_name(self):
        return self.boss.name if self.boss else self.manual_boss_name

    @property
    def boss_phone(self):
        return self.boss.phone_number if self.boss else self.manual_boss_phone

    def to_dict(self):
        signature = self.signature
        return {
            'id': self.id,
            'staff_name': self.staff_name,
            'boss_name': self.boss_name,
            'boss_phone': self.boss_phone,
            'status': self.status,
            'unique_link': self.unique_link,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'signed_at': signature.signed_at.isoformat() if signature and signature.signed_at else None,
            'rejection_reason': signature.rejection_reason if signature else None
        }


class Signature(db.Model):
    __tablename__ = 'signatures'

    id = db.Column(db.Integer, primary_key=True)
    # One signature (or rejection) per request
    request_id = db.Column(db.Integer, db.ForeignKey('sign_requests.id'), unique=True, nullable=False)
    signature_path = db.Column(db.String(500))
    signed_pdf_path = db.Column(db.String(500))
    type = db.Column(db.String(20), nullable=False)  # 'DRAWN', 'UPLOADED' or 'REJECTED'
    signed_at = db.Column(db.DateTime)
    rejection_reason = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'type': self.type,
            'signed_at': self.signed_at.isoformat() if self.signed_at else None,
            'rejection_reason': self.rejection_reason
        }


def seed_bosses(bosses):
    """Create the given bosses unless one with the same name already exists."""
    created = []
    for boss_data in bosses:
        if Boss.query.filter_by(name=boss_data['name']).first():
            continue
        boss = Boss(name=boss_data['name'], phone_number=boss_data['phone_number'])
        db.session.add(boss)
        created.append(boss)

    db.session.commit()
    return created
