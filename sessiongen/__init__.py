"""
Sessiongen - Messaging Session Generator

A service that provisions ephemeral messaging-protocol sessions for remote
clients and relays the resulting credentials back over the session itself.

Architecture:
- Each module is self-contained with clear interfaces
- Modules are completely replaceable
- No module knows the internals of another
- All communication through defined interfaces

Modules:
- config: Application configuration
- session: Session store and lifecycle coordination
- credentials: Credential assembly and delivery
- notifications: Broadcast of lifecycle events to observers
- protocol: Messaging protocol connector interface
- storage: Per-session directory layout
- api: REST API models
"""

__version__ = "1.0.0"
