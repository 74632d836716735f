"""Terminal front end for the chat session store."""
