"""
JAX Configuration - MUST be imported before any JAX imports.

This module sets environment variables for JAX configuration including:
- 64-bit floats by default (chain histories and diagnostics are float64)
- Suppression of XLA C++ log noise
"""
import os

# --- PRECISION ---
# Draws feed float64 parameter vectors; 32-bit draws would be upcast anyway.
# configure_mcmc_system() can still switch this off via 'use_double'.
os.environ.setdefault("JAX_ENABLE_X64", "1")

# --- LOGGING ---
# Suppress CUDA/XLA C++ warnings (GPU interconnect, NUMA, cuDNN factories)
os.environ.setdefault("TF_CPP_MIN_LOG_LEVEL", "2")
