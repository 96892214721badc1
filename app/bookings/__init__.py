"""
Bookings app.

Studio session bookings and their lifecycle:
    pending -> confirmed -> completed
    pending -> cancelled
"""
