"""Notifications Domain - stored notifications and live channel fan-out"""
