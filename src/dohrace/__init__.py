"""dohrace package"""
