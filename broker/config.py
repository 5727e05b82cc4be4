"""RabbitMQ topology for notification messages."""

EXCHANGE = "notification-exchange"
QUEUE_NOTIFICATIONS = "notification-queue"
QUEUE_NOTIFICATIONS_DLQ = "notification-queue.dlq"
ROUTING_KEY = "notification.order"
