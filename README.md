# aosnet

A small TCP session framework built around length-prefixed packets, together
with an echo server and a load-testing client that drives it. It uses only
the standard library.

## Wire format

Every packet starts with a 2-byte little-endian length header. The length
counts the whole packet, header included, so a packet carrying 64 bytes of
payload has a header value of 66. A header value below 2 is treated as a
protocol error and the connection is closed.

## Installing

```
pip install .
```

For running the tests:

```
pip install .[test]
pytest
```

## Commands

Start the server first, then the client in another terminal:

```
aosnet-echo-server
aosnet-load-client
```

### aosnet-echo-server

Listens on `0.0.0.0:9001` and sends every complete packet a client sends
straight back to it. It prints `listening on HOST:PORT` once bound, a line
whenever a client disconnects, and a status line at a fixed interval with the
number of connected clients, packets per second, and the total and available
counts of pooled buffers. It runs until interrupted.

Options:

- `--host` address to bind (default `0.0.0.0`)
- `--port` port to bind (default `9001`)
- `--threads` worker threads for the event-loop core (default `1`)
- `--stat-interval` seconds between status lines (default `5.0`)

### aosnet-load-client

Opens client connections to the echo server, keeps one 66-byte packet in
flight on each and waits for the echo. At each interval it prints throughput
with the average, minimum and maximum round-trip time in microseconds, or a
note that no responses arrived. One extra connection measures the latency of a
plain send-then-receive loop on its own and reports it separately.

Options:

- `--host` server address (default `127.0.0.1`)
- `--port` server port (default `9001`)
- `--clients` total clients, used for the report label and to size the
  workers (default `1000`)
- `--per-thread` clients opened by each worker thread (default `500`)
- `--interval` seconds between reports (default `5.0`)
- `--duration` stop after this many seconds; without it the client runs
  until its workers finish or it is interrupted

The number of worker threads is `(clients - 1) // per_thread`, each opening
`per_thread` connections; with the defaults that is one worker with 500
connections, plus the single measuring connection.

## Library

The pieces the commands are made of can be used directly.

- `aosnet.recv_buffer.RecvBuffer` collects received bytes and hands out whole
  packets. `write` appends data, compacting the buffer when it runs out of
  room and raising `BufferError` for data that still will not fit.
  `has_complete_packet` tells whether a packet of a given size is stored,
  `peek` returns bytes without removing them (all stored bytes if no size is
  given) and `consume` drops what has been handled. `stored_size` and
  `capacity` report its state.

  ```python
  from aosnet.recv_buffer import RecvBuffer

  buf = RecvBuffer(8192)
  buf.write(b"\x05\x00abc")
  if buf.has_complete_packet(5):
      packet = buf.peek(5)
      buf.consume(5)
  ```

- `aosnet.buffer_pool.BufferPool` hands out reusable 4096-byte `PoolBuffer`
  objects with `acquire` and takes them back with `release`; `borrow` does
  both as a context manager. Releasing a buffer into a pool that did not
  create it raises `ForeignBufferError`. `GlobalPoolManager.instance()` keeps
  `total_count` and `available_count` across all pools, and `my_pool` gives
  the calling thread its own pool.

- `aosnet.server_stat.ServerStat` counts connected clients and processed
  packets. `take_snapshot` returns a `StatSnapshot` and resets the packet
  count; `start` runs a background thread that writes a formatted snapshot at
  a fixed interval until `shutdown`.

- `aosnet.session.Session` is an `asyncio.Protocol` and the base class for a
  connection. It splits the incoming stream into packets and calls
  `on_recv_packet` for each one (header included), queues outgoing data
  through `post_send` and writes it one packet at a time through a pooled
  buffer (packets larger than 4096 bytes raise `ValueError`), and calls
  `on_disconnected` once when the connection ends. Override the `on_*` hooks
  to give a session its behaviour.

- `aosnet.core.NetCore` runs an asyncio event loop on a background thread
  with a pool of worker threads as its default executor, and keeps track of
  registered sessions so they are closed on `shutdown`; it can also be used
  as a context manager. `aosnet.core.Listener` accepts connections on a
  `NetAddress` and creates a session for each one from a factory;
  `bound_address` gives the real port when binding to port 0.

- `aosnet.echo_server.EchoSession` is the session the echo server uses, and
  `aosnet.echo_server.serve` runs the server for the duration of a `with`
  block, yielding its `Listener`.

- `aosnet.load_client` provides `build_packet`, `LatencyStats`,
  `LatencySummary` and `format_summary` for building traffic and reporting
  round-trip times, along with `client_loop`, `single_client_monitor` and
  `monitor_loop`, which the command runs on its threads.

## What it does not do

The server only echoes packets back; there is no application protocol,
message routing, authentication or encryption on top of the length framing,
and only IPv4 addresses are accepted.