"""
OrderHub - order distribution pipeline
Fans each order out to the CRM (via RabbitMQ) and the ERP (iDoc over HTTP)
"""

__version__ = "0.1.0"
