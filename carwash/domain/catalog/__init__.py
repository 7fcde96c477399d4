"""Catalog Domain - wash services and customer vehicles"""
