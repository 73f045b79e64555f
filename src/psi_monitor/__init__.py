"""Linux Pressure Stall Information (PSI) monitor."""
