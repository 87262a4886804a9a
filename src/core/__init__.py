"""Core domain package for telecampaign.

Core contains campaign matching, conversation orchestration and lifecycle
logic without any Telegram or storage-specific code, keeping the business
logic portable.
"""
