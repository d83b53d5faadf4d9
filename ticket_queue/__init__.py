"""
                Ticket Queue Service

Walk-in ticket queue backend for a single food-service establishment:
daily ticket sequencing, client/server queue reconciliation and
email/WhatsApp notification fan-out.

Author: Khalil_Bannouri
Version: 3.0.0
License: MIT
"""

__version__ = "3.0.0"
__author__ = "Khalil_Bannouri"
