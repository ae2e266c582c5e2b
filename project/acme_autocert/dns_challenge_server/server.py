import logging
import socketserver
from typing import Optional

from dnslib import QTYPE
from dnslib import RR
from dnslib import TXT
from dnslib import A
from dnslib import DNSError
from dnslib import DNSRecord

logger = logging.getLogger(__name__)

# record name without trailing dot, lowercased -> TXT values
txt_records: dict[str, list[str]] = {}
a_record: Optional[str] = None


def record_name(domain: str) -> str:
    return f"_acme-challenge.{domain}".rstrip(".").lower()


class DNSServer(socketserver.BaseRequestHandler):
    def handle(self):
        data: bytes = self.request[0]
        logger.debug(f"Received {len(data)} bytes")
        try:
            query_record: DNSRecord = DNSRecord.parse(data)
            response_record = create_response(query_record)
            logger.debug(f"response_record = \n{response_record}")
            self.request[1].sendto(response_record.pack(), self.client_address)
        except DNSError:
            logger.exception("Failed parsing DNS request record: " + data.hex(" "))


def create_response(query_record: DNSRecord) -> DNSRecord:
    reply = query_record.reply()
    qname = str(query_record.q.qname).rstrip(".").lower()

    if query_record.q.qtype == QTYPE.A and a_record is not None:
        logger.debug("query_record.q.qtype == QTYPE.A")
        # Unconditionally return the a_record value for all A record queries,
        # copying the request name as-is into the response.
        reply.add_answer(
            RR(rname=query_record.q.qname, rtype=QTYPE.A, rdata=A(a_record)),
        )

    elif query_record.q.qtype == QTYPE.TXT and qname in txt_records:
        logger.debug(f"query_record.q.qtype == QTYPE.TXT for {qname}")
        for value in txt_records[qname]:
            reply.add_answer(
                RR(rname=query_record.q.qname, rtype=QTYPE.TXT, rdata=TXT(value)),
            )
    else:
        logger.debug(f"Ignoring query_record.q.qtype == {QTYPE[query_record.q.qtype]}")

    return reply
