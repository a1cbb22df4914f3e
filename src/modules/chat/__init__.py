"""Booking chat — per-booking client/staff messaging with deferred purge on close."""
