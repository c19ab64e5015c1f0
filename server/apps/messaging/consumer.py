"""RabbitMQ request consumer answering RPC style.

Requests arrive on a durable queue bound to a topic exchange. Each one
is dispatched and exactly one reply is published to the request's
``reply_to`` queue with the same ``correlation_id``.
"""

import json
import logging
import time
from collections.abc import Iterable
from typing import Final, final

import pika
from pika.adapters.blocking_connection import BlockingChannel
from pika.exceptions import AMQPChannelError, AMQPConnectionError
from pika.spec import Basic, BasicProperties

from server.apps.messaging.dispatcher import MessageDispatcher
from server.apps.messaging.health import HealthReporter

logger = logging.getLogger(__name__)

_BROKER_TRAIT: Final = 'rabbitmq'


@final
class RequestConsumer:
    """Blocking consumer that reconnects until stopped."""

    def __init__(  # noqa: WPS211
        self,
        dispatcher: MessageDispatcher,
        *,
        url: str,
        exchange: str,
        queue: str,
        topics: Iterable[str],
        reconnect_delay: float = 5,
        health: HealthReporter | None = None,
    ) -> None:
        """Initialize the consumer.

        Args:
            dispatcher: Turns requests into responses.
            url: AMQP connection URL.
            exchange: Topic exchange requests are published to.
            queue: Durable queue this service consumes from.
            topics: Routing key patterns bound to the queue.
            reconnect_delay: Seconds to wait before reconnecting.
            health: Reporter told whether the broker is reachable.
        """
        self.dispatcher = dispatcher
        self.url = url
        self.exchange = exchange
        self.queue = queue
        self.topics = tuple(topics)
        self.reconnect_delay = reconnect_delay
        self.health = health
        self._running = False
        self._connection: pika.BlockingConnection | None = None
        self._channel: BlockingChannel | None = None

    def run(self) -> None:
        """Consume until ``stop`` is called, reconnecting on failures."""
        self._running = True
        while self._running:
            try:
                self._consume()
            except (AMQPConnectionError, AMQPChannelError) as error:
                self._set_broker_up(is_up=False)
                if not self._running:
                    break
                logger.error(
                    'RabbitMQ consumer stopped: %s. Retrying in %s seconds',
                    error,
                    self.reconnect_delay,
                )
                time.sleep(self.reconnect_delay)

    def stop(self) -> None:
        """Ask the consume loop to finish."""
        self._running = False
        connection = self._connection
        if connection is not None and connection.is_open:
            connection.add_callback_threadsafe(self._stop_consuming)

    def handle_delivery(
        self,
        channel: BlockingChannel,
        method: Basic.Deliver,
        properties: BasicProperties,
        body: bytes,
    ) -> None:
        """Dispatch one request, reply to it and acknowledge it.

        Args:
            channel: Channel the request arrived on.
            method: Delivery metadata with the routing key.
            properties: Request properties with ``reply_to``.
            body: JSON encoded request.
        """
        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning('Could not decode message body, discarding: %r', body)
            payload = None

        response = self.dispatcher.dispatch(method.routing_key, payload)

        if properties.reply_to:
            channel.basic_publish(
                exchange='',
                routing_key=properties.reply_to,
                body=json.dumps(response, default=str),
                properties=pika.BasicProperties(
                    content_type='application/json',
                    correlation_id=properties.correlation_id,
                ),
            )
        else:
            logger.warning(
                'Request %s on %s has no reply_to, response dropped',
                properties.correlation_id,
                method.routing_key,
            )

        channel.basic_ack(delivery_tag=method.delivery_tag)

    def _consume(self) -> None:
        self._connection = pika.BlockingConnection(
            pika.URLParameters(self.url),
        )
        try:
            channel = self._connection.channel()
            self._channel = channel
            channel.exchange_declare(
                exchange=self.exchange,
                exchange_type='topic',
                durable=True,
            )
            channel.queue_declare(queue=self.queue, durable=True)
            for topic in self.topics:
                channel.queue_bind(
                    exchange=self.exchange,
                    queue=self.queue,
                    routing_key=topic,
                )
            channel.basic_qos(prefetch_count=1)
            channel.basic_consume(
                queue=self.queue,
                on_message_callback=self.handle_delivery,
            )

            self._set_broker_up(is_up=True)
            logger.info(
                'Consuming %s from exchange %s (%s)',
                self.queue,
                self.exchange,
                ', '.join(self.topics),
            )
            channel.start_consuming()
        finally:
            if self._connection.is_open:
                self._connection.close()
            self._connection = None
            self._channel = None

    def _stop_consuming(self) -> None:
        if self._channel is not None and self._channel.is_open:
            self._channel.stop_consuming()

    def _set_broker_up(self, *, is_up: bool) -> None:
        if self.health is not None:
            self.health.set_trait(_BROKER_TRAIT, is_up)
