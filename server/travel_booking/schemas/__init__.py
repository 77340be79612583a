"""Pydantic schemas for request/response validation."""

from .auth import *  # noqa: F403
from .booking import *  # noqa: F403
from .common import *  # noqa: F403
from .package import *  # noqa: F403
from .payment import *  # noqa: F403
