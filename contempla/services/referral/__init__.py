"""Referral codes and resolution."""
