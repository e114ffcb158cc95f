# Import models so that SQLAlchemy metadata includes them on app startup
from .user import User, UserSession  # noqa: F401
from .profile import Profile  # noqa: F401
from .cart import Cart, CartItem  # noqa: F401
from .order import Order  # noqa: F401
from .support import SupportMessage  # noqa: F401
