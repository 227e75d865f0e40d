"""Admin access gate.

There is one shared password and one cookie. The cookie only says "this
browser logged in"; it carries no identity, but it is signed with the app's
secret key so it can't be written by hand. ``AuthPort`` keeps that behind an
interface so per-admin accounts can replace it later.
"""

import hmac
from functools import wraps

from flask import current_app, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from corporate.errors import UnauthorizedError

SESSION_SALT = 'admin-session-v1'


class AuthPort:
    def check_password(self, password):
        raise NotImplementedError

    def issue_token(self):
        raise NotImplementedError

    def validate(self, token):
        raise NotImplementedError


class StaticPasswordAuth(AuthPort):
    def __init__(self, password, secret_key, max_age=60 * 60 * 24):
        self.password = password or ''
        self.max_age = max_age
        self.serializer = URLSafeTimedSerializer(secret_key, salt=SESSION_SALT)

    def check_password(self, password):
        if not self.password or not isinstance(password, str):
            return False
        return hmac.compare_digest(password.encode('utf-8'), self.password.encode('utf-8'))

    def issue_token(self):
        return self.serializer.dumps({'admin': True})

    def validate(self, token):
        if not token:
            return False
        try:
            payload = self.serializer.loads(token, max_age=self.max_age)
        except (BadSignature, SignatureExpired):
            return False
        return isinstance(payload, dict) and payload.get('admin') is True


def is_authenticated():
    auth = current_app.extensions['corporate'].auth
    return auth.validate(request.cookies.get(current_app.config['ADMIN_COOKIE_NAME']))


def admin_required(view):
    """Reject the request with 401 unless the admin cookie is valid."""

    @wraps(view)
    def wrapped(*args, **kwargs):
        if not is_authenticated():
            raise UnauthorizedError('Unauthorized')
        return view(*args, **kwargs)

    return wrapped
