"""Third-party adapters (Google Calendar, Trinks, Twilio)"""
