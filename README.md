# sntpd

A small SNTP server. It listens on UDP and answers every valid client-mode
request (leap indicator 0 or 3, version 1 to 4, mode 3, at least 48 bytes)
with a 48-byte reply that carries the local clock. Requests that are not
valid are dropped without a reply. The package also includes a minimal NTP
client.

## Installation

```
pip install .
```

## Running the server

```
sntpd
```

Options:

- `--host ADDRESS` — address to bind (default: all interfaces; an address
  containing `:` is bound as IPv6)
- `--port PORT` — UDP port (default: 123)

Port 123 needs elevated privileges on most systems; for a quick try use
something like `sntpd --port 12300`. The server runs until interrupted.

The reply has stratum 1, precision `0xEC`, reference identifier `NICT`, the
version copied from the request, the poll value copied from the request, and
the request's transmit timestamp as its originate timestamp. Receive and
transmit timestamps are both the current time.

## Using it as a library

Build a reply to a raw request yourself:

```python
from sntpd.protocol import serve, InvalidFormatError

try:
    reply = serve(request_bytes)  # or serve(request_bytes, time.time_ns())
except InvalidFormatError:
    reply = None
```

The optional `now` argument of `serve` and `generate` is the current time in
nanoseconds since the Unix epoch; the system clock is used when it is
omitted. `valid_format`, `unix_to_ntp`, `ntp_to_unix` and `int_to_bytes` are
available as well.

Ask a server for its time:

```python
from sntpd.client import query

print(query("localhost", 123, 5.0))
```

`query` returns the server's receive timestamp as an aware `datetime` in the
local time zone. Network failures and timeouts raise `OSError`.

The lower-level pieces are also available. `sntpd.client.Message` packs and
unpacks the 48-byte NTP header, with `NtpTime` for its timestamps and `Mode`
for the association modes. `sntpd.reactor.Reactor` runs UDP, TCP and
Unix-socket listeners (`listen_udp`, `listen_tcp`, `listen_unix`), which
dispatch each datagram or connection on its own thread to
`DatagramHandler` and `StreamHandler` objects; `call_later` queues callbacks
to run in order once `run` starts, and `stop` closes every listener.
`sntpd.server.SntpHandler` is the datagram handler the `sntpd` command uses.

## What it does not do

The server only answers requests; it does not synchronise with upstream
servers, compute offsets or delays, or handle NTP authentication fields.
The client sends a single request and returns the receive timestamp as is.

## Tests

```
pip install .[test]
pytest
```