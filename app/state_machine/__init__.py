from .machine import ClaimSessionMachine

__all__ = ["ClaimSessionMachine"]
