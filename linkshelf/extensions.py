from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()


def init_limiter(app, *blueprints) -> Limiter:
    """One per-client budget shared by every route under ``/api``."""
    limiter = Limiter(key_func=get_remote_address)
    api_limit = limiter.shared_limit(lambda: app.config["API_RATE_LIMIT"], scope="api")
    for blueprint in blueprints:
        api_limit(blueprint)
    limiter.init_app(app)
    return limiter
