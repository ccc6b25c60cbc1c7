"""
Voice Pipeline for the voice assistant.

Turn-taking loop: capture -> route -> assistant reply -> playback.
The language-model credential never lives here; replies come from the relay
server over HTTP.

- capture: speech capture sessions and their engine interface
- router: local voice commands vs. free-form requests
- assistant_client: relay client
- playback: ordered, non-overlapping speech output
- controller: the Idle / Listening / AwaitingReply / Speaking state machine
"""
