"""Rules engines: dice, conditions, damage, spells, combat sessions and action resolution."""
