"""Customers domain - phone-first identification"""
