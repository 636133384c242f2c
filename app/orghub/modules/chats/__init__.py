"""Organization chats: participants and message history."""
