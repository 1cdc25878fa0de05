"""Catalog domain - professionals and services"""
