"""Availability domain - working rules, overrides and slot computation"""
