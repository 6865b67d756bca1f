"""
ComplianceOS outbound notifications.

Components:
- schemas: NotificationMessage and channel/status enums
- channels: Webhook and email dispatch, routed per message
"""
