"""Integration tests for the Deribit client.

These tests validate end-to-end functionality:
- Session lifecycle through the client against a scripted server
- Typed endpoint wrappers over the real transport code
- Rate budgets charged per endpoint category
"""
