"""Salon appointment-scheduling core"""
