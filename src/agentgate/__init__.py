"""
AgentGate - conversational agent gateway with AI moderation

AgentGate relays chat messages to configured language-model agents and streams
their replies back into the chat, while group conversations are screened by an
AI classifier feeding an escalating warning system.

Core Components:

- **Deduplicator**: drops replayed or rapidly repeated inbound messages
- **Stream Aggregator**: turns a token feed into throttled partial updates and
  one final reply, bounded by a deadline
- **Memory Manager**: keeps per-conversation windows bounded through rolling
  summaries and builds token-budgeted context strings
- **Moderation Engine**: classifies group messages into none/warn/ban verdicts
- **Warning Ledger**: escalates warnings into mute, temporary removal and ban,
  with expiry and reinstatement handling

Usage:
    from agentgate.main import main
    main()
"""
