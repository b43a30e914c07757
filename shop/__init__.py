"""
Shop order and payment service.

This package turns carts into orders while reserving inventory, creates
payment gateway transactions for them and reconciles the gateway's
asynchronous notifications against order and payment state, following
Clean Architecture principles: domain models and repository protocols at
the centre, use cases on top, and storage, gateway, HTTP and Temporal
adapters at the edges.
"""
