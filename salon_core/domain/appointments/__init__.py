"""Appointments domain - booking lifecycle and state machine"""
