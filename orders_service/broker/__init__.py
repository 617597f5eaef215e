from orders_service.broker.consumer import NotificationsConsumer
from orders_service.broker.publisher import RabbitMQPublisher

__all__ = ["NotificationsConsumer", "RabbitMQPublisher"]
