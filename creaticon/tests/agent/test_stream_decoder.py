import unittest

from creaticon.agent.stream_decoder import SSEStreamDecoder, StreamEvent


class SSEStreamDecoderTests(unittest.TestCase):
    def test_line_split_across_chunks_is_reassembled(self):
        decoder = SSEStreamDecoder()

        first = decoder.feed(b'data: {"a": ')
        second = decoder.feed(b'1}\n\n')

        self.assertEqual(first, [])
        self.assertEqual(second, [StreamEvent(kind="data", data='{"a": 1}')])

    def test_multibyte_character_split_across_chunks(self):
        decoder = SSEStreamDecoder()
        payload = 'data: {"text": "café ☃"}\n'.encode("utf-8")
        split_at = payload.index("☃".encode("utf-8")) + 1

        events = decoder.feed(payload[:split_at]) + decoder.feed(payload[split_at:])

        self.assertEqual(len(events), 1)
        self.assertIn("café ☃", events[0].data)
        self.assertNotIn("�", events[0].data)

    def test_non_data_lines_are_ignored(self):
        decoder = SSEStreamDecoder()

        events = decoder.feed(
            b": keep-alive\n"
            b"event: content_block_delta\n"
            b"id: 7\n"
            b"retry: 1000\n"
            b"\n"
            b'data: {"ok": true}\r\n'
        )

        self.assertEqual(events, [StreamEvent(kind="data", data='{"ok": true}')])

    def test_done_marker_ends_the_stream(self):
        decoder = SSEStreamDecoder()

        events = decoder.feed(b'data: {"n": 1}\ndata: [DONE]\ndata: {"n": 2}\n')

        self.assertEqual([e.kind for e in events], ["data", "done"])
        self.assertTrue(decoder.finished)
        self.assertEqual(decoder.feed(b'data: {"n": 3}\n'), [])
        self.assertIsNone(decoder.finish())

    def test_finish_flushes_trailing_line_without_newline(self):
        decoder = SSEStreamDecoder()

        self.assertEqual(decoder.feed(b'data: {"tail": 1}'), [])
        self.assertEqual(decoder.finish(), StreamEvent(kind="data", data='{"tail": 1}'))

    def test_byte_at_a_time_feed_matches_single_feed(self):
        body = 'data: {"x": "über"}\n\ndata: {"y": 2}\n\ndata: [DONE]\n'.encode("utf-8")
        whole = SSEStreamDecoder().feed(body)

        trickle_decoder = SSEStreamDecoder()
        trickled = []
        for i in range(len(body)):
            trickled.extend(trickle_decoder.feed(body[i:i + 1]))

        self.assertEqual(trickled, whole)
