from .user import User, PROVIDERS
