import re
from datetime import datetime, timezone
from sqlalchemy.orm import relationship
from extensions import db, bcrypt

utcnow = lambda: datetime.now(timezone.utc)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

class TimestampMixin:
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False
    )


class User(TimestampMixin, db.Model):
    __tablename__ = 'users'

    id             = db.Column(db.Integer, primary_key=True)
    email          = db.Column(db.String(255), unique=True, nullable=False, index=True)

    local_auth = relationship('LocalAuth', back_populates='user', uselist=False, cascade='all, delete-orphan')
    profile    = relationship('Profile',   back_populates='user', uselist=False, cascade='all, delete-orphan')

    @staticmethod
    def normalize_email(raw: str) -> str:
        return (raw or "").strip().lower()

    @staticmethod
    def _validate_email(e: str):
        """Raise ValueError if invalid."""
        if not EMAIL_RE.match(e or ""):
            raise ValueError("Please enter a valid email address.")

    def check_password(self, password: str) -> bool:
        return bool(self.local_auth and self.local_auth.check_password(password))

    def __repr__(self):
        return f"<User {self.email}>"


class LocalAuth(db.Model):
    __tablename__ = 'local_auth'
    user_id        = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True)
    password_hash  = db.Column(db.String(128), nullable=False)
    failed_logins  = db.Column(db.Integer, default=0, nullable=False)
    last_failed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_login_at  = db.Column(db.DateTime(timezone=True), nullable=True)
    password_changed_at = db.Column(db.DateTime(timezone=True))

    user = db.relationship('User', back_populates='local_auth')

    def _validate_password(self, raw: str, email: str = ""):
        pw = raw or ""
        if len(pw) < 8:
            raise ValueError("Password must be at least 8 characters long.")
        if re.search(r'(.)\1\1', pw):
            raise ValueError("No character may repeat three times in a row.")
        local_part = (email or "").split("@", 1)[0].lower()
        if local_part and len(local_part) >= 4 and local_part in pw.lower():
            raise ValueError("Password must not contain your email address.")

    def set_password(self, raw: str, email: str = "") -> None:
        self._validate_password(raw, email)
        self.password_hash = bcrypt.generate_password_hash(raw).decode('utf-8')
        self.password_changed_at = utcnow()

    def check_password(self, password: str) -> bool:
        if not self.password_hash:
            return False
        return bcrypt.check_password_hash(self.password_hash, password)
