"""SmartPRO — dashboard backend for a multi-tenant business-services platform.

Bookings, contracts and messages for admins, providers and clients, with
cached per-user dashboard metrics and live updates over Redis pub/sub.
"""

__version__ = "0.1.0"
