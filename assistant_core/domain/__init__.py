"""领域层模型与异常。

包含：
- models: Assistant / ConversationHandle / Job / Message 等统一数据结构。
- exceptions: 业务异常类型定义（错误分类）。
"""
