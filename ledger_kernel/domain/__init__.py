"""Pure domain layer: clock, enums and value objects, DTOs.  Zero I/O."""
