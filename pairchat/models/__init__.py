from pairchat.models.user import User
from pairchat.models.message import Message

__all__ = [
	"User",
	"Message",
]
