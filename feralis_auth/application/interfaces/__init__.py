"""Application interfaces."""

from .repositories import IBackupCodeRepository, IRefreshTokenRepository, IUserRepository

__all__ = ["IBackupCodeRepository", "IRefreshTokenRepository", "IUserRepository"]
