"""AI assistant endpoints: chat, command parsing/execution, orchestration, images."""
