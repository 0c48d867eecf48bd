class ChatStreamError(Exception):
    """Base exception for the streaming chat backend"""
    pass

class InvalidPayloadError(ChatStreamError):
    """Request body failed validation"""
    pass

class ConversationNotFoundError(ChatStreamError):
    """Conversation id is unknown to the metadata store"""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id

class ProviderFailureError(ChatStreamError):
    """Completion provider failed while generating a reply"""
    pass

class StorageFailureError(ChatStreamError):
    """Persistence call failed"""
    pass

class DuplicateSequenceError(StorageFailureError):
    """(conversation_id, seq) already taken by another writer"""

    def __init__(self, conversation_id: str, seq: int):
        super().__init__(f"Sequence {seq} already exists in conversation {conversation_id}")
        self.conversation_id = conversation_id
        self.seq = seq

class MalformedEventError(ChatStreamError):
    """Wire event payload could not be parsed"""
    pass

class ConfigurationError(ChatStreamError):
    """Configuration error"""
    pass
