"""领域层模型与异常。

包含：
- models: ChatMessage / StreamRequest / SseRecord / StreamState 模型。
- conversation: 持有消息列表与流句柄的会话对象。
- exceptions: 业务异常类型定义。
"""
