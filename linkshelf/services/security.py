from functools import wraps

from flask import current_app, g, request
from flask_login import UserMixin, current_user
from itsdangerous import BadData, URLSafeTimedSerializer

from linkshelf.errors import AuthError, TokenError
from linkshelf.extensions import login_manager

TOKEN_SALT = "linkshelf-auth-token"


class AccountUser(UserMixin):
    def __init__(self, username: str, user_hash: str):
        self.username = username
        self.user_hash = user_hash

    def get_id(self):
        return self.username


def _serializer(secret_key: str) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(secret_key=secret_key, salt=TOKEN_SALT)


def issue_token(secret_key: str, username: str, user_hash: str) -> str:
    return _serializer(secret_key).dumps({"username": username, "userHash": user_hash})


def read_token(secret_key: str, token: str, max_age: int) -> AccountUser:
    try:
        payload = _serializer(secret_key).loads(token, max_age=max_age)
    except BadData as exc:
        raise TokenError() from exc
    if not isinstance(payload, dict):
        raise TokenError()
    username = payload.get("username")
    user_hash = payload.get("userHash")
    if not username or not user_hash:
        raise TokenError()
    return AccountUser(username, user_hash)


def issue_token_for(username: str, user_hash: str) -> str:
    return issue_token(current_app.config["SECRET_KEY"], username, user_hash)


def _bearer_token():
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    token = auth_header.removeprefix("Bearer ").strip()
    return token or None


@login_manager.request_loader
def load_user_from_request(_request):
    token = _bearer_token()
    if not token:
        return None
    try:
        return read_token(
            current_app.config["SECRET_KEY"],
            token,
            max_age=current_app.config["TOKEN_MAX_AGE_SECONDS"],
        )
    except TokenError:
        return None


def api_auth_required(func):
    @wraps(func)
    def wrapped(*args, **kwargs):
        if not _bearer_token():
            raise AuthError("Access token required")
        if not current_user.is_authenticated:
            raise TokenError()
        g.api_user = current_user._get_current_object()
        return func(*args, **kwargs)

    return wrapped
