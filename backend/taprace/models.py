from taprace import db, bcrypt
from flask_login import UserMixin
import time
import uuid


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    uid = db.Column(db.String(32), unique=True, nullable=False, index=True, default=lambda: uuid.uuid4().hex)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    display_name = db.Column(db.String(64), nullable=True)
    password_hash = db.Column(db.String(256), nullable=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'uid': self.uid,
            'email': self.email,
            'display_name': self.display_name,
        }


class Document(db.Model):
    """One JSON document of the shared state store (e.g. rooms/ABCD)."""
    __tablename__ = 'document'
    __table_args__ = (db.UniqueConstraint('collection', 'key', name='uq_document_collection_key'),)
    id = db.Column(db.Integer, primary_key=True)
    collection = db.Column(db.String(32), nullable=False, index=True)
    key = db.Column(db.String(64), nullable=False)
    body = db.Column(db.Text, nullable=False)  # JSON-encoded value
    updated_at = db.Column(db.Float, nullable=False, default=time.time)
