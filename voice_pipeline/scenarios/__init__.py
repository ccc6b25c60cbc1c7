"""
Behavior prompt scenarios.

Each scenario defines:
- name: Scenario identifier
- prompt: System instructions sent with every transcript
- greeting_text: Fixed phrase spoken when the assistant starts
"""
