"""Order workflow services: cart mutations and the order placement transaction"""
