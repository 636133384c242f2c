"""
Community content: announcements, events, the meetings schedule and per-user notifications.
"""
