"""celistener Quickstart: receive a CloudEvent and acknowledge it.

    curl -i -X POST localhost:8080 \\
        -H "ce-id: abc-1" -H "ce-source: /test" \\
        -H "ce-specversion: 1.0" -H "ce-type: example.event" \\
        -d '{"k":1}'
"""

import logging
from wsgiref.simple_server import make_server

from celistener import CloudEvent, CloudEventListener


class AckListener(CloudEventListener):
    def consume_event(self, event, request, response):
        print(f"CloudEvent: {event.type} from {event.source}, {len(event.data or b'')} bytes")
        ack = CloudEvent.create("/quickstart", "example.ack", extensions={"acked": event.id})
        self.send_cloud_event(ack, response)


logging.basicConfig(level=logging.DEBUG)
make_server("", 8080, AckListener()).serve_forever()
