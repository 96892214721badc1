"""
Earnings app.

Producer share of settled bookings (gross / platform fee / net) and the
bookkeeping of payout batches.
"""
