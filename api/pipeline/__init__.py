"""Stages of a chat turn, in execution order.

normalizer -> context_enhancer -> intent_resolver -> rewriter -> assembler
"""
