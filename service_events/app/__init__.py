"""
Efficio events service: real-time push of activities and notifications.
"""
