from .profile import Profile
from .child import Child
from .settings import ChildSettings
from .usage import Usage
from .base import Base
