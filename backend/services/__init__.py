"""
Initialize services package

Available services:
- ExtractionEngine: Rule-based candidate profile extraction from chat messages
- PromptBuilder: Bounded, stage-aware prompt assembly
- StageTracker: Forward-only conversation stage transitions
- LLMGateway: OpenAI completions with retry, backoff and fallback replies
- SessionManager: Versioned chat sessions with expiry and profile merging
- ConversationService: Per-turn orchestration of all of the above
"""
