"""
                        Services Module

Contains all business logic services with the hybrid architecture pattern.
Notification transports have Mock (development) and Real (production)
implementations.

Services:
    - queue: Ticket sequencing, snapshot sync, daily reset and archive
    - notifications: Email and WhatsApp delivery with per-channel outcomes
"""
