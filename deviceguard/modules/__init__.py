"""Domain modules: accounts, devices, otp and transfers."""
