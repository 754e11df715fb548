"""
Integration tests for the evolution engine.
"""

import math
import unittest

import numpy as np
import pandas as pd
from deap import tools

from evotrain.evolution.components.engine import EngineState, EvolutionEngine
from evotrain.evolution.components.errors import (ConfigurationError, InitializationError, LifecycleError,
                                                  OffspringInvalid, TrainingFailure)
from evotrain.evolution.components.evaluators import CallableScoreFunction
from evotrain.evolution.components.genetic import (ArrayCODEC, DoubleArrayGenome, DoubleArrayGenomeFactory,
                                                   MutatePerturb, Splice)
from evotrain.evolution.components.handlers import EarlyStoppingHandler, EventHandler, LoggingHandler
from evotrain.evolution.components.population import Population, Species
from evotrain.evolution.components.result import EvolutionResult
from evotrain.evolution.components.strategies import (ArrayThresholdSpeciation, EvolutionaryOperator,
                                                      FiniteArrayValidator, GenomeValidator, MaxSizeValidator,
                                                      Speciation, TournamentSelection)


def sphere(vector):
    return -float(np.sum(vector ** 2))


def sum_of_squares(vector):
    return float(np.sum(vector ** 2))


def build_engine(size=20, seed=1, minimize=False, operators=None, config=None, speciation=None,
                 max_species=0, max_individual_size=0, score=None):
    population = Population(max_population_size=size, max_individual_size=max_individual_size,
                            max_species=max_species)
    population.seed(DoubleArrayGenomeFactory(4, low=-2.0, high=2.0), np.random.default_rng(seed))
    if score is None:
        score = sum_of_squares if minimize else sphere
    engine = EvolutionEngine(population, CallableScoreFunction(score, minimize=minimize), codec=ArrayCODEC(),
                             speciation=speciation, seed=seed, config=config)
    if operators is None:
        operators = [(0.7, MutatePerturb(0.2)), (0.3, Splice(cut_length=1))]
    for probability, operator in operators:
        engine.add_operation(probability, operator)
    return engine


def best_history(engine):
    return [record['best'] for record in engine.history]


class ToggleOperator(EvolutionaryOperator):
    """Mutates like MutatePerturb until told to fail."""

    def __init__(self, error=None):
        super().__init__()
        self.error = error
        self.calls = 0

    def apply(self, rnd, parents):
        self.calls += 1
        if self.error is not None:
            raise self.error
        child = parents[0].clone()
        child.data = child.data + rnd.normal(0, 0.1, child.size())
        return [child]


class GrowOperator(EvolutionaryOperator):
    """Appends a gene, producing genomes that outgrow the size limit."""

    def apply(self, rnd, parents):
        return [DoubleArrayGenome(data=np.append(parents[0].data, 0.0))]


class RejectAllValidator(GenomeValidator):

    def __init__(self):
        self.calls = 0

    def validate(self, genome, engine):
        self.calls += 1
        raise OffspringInvalid("rejected")


class CountingValidator(GenomeValidator):

    def __init__(self):
        self.calls = 0

    def validate(self, genome, engine):
        self.calls += 1


class RecordingHandler(EventHandler):

    def __init__(self):
        super().__init__()
        self.events = []

    def on_training_start(self, **kwargs):
        self.events.append('training_start')

    def on_generation_complete(self, iteration, **kwargs):
        self.events.append(('generation_complete', iteration))

    def on_training_complete(self, **kwargs):
        self.events.append('training_complete')

    def on_training_error(self, error=None, **kwargs):
        self.events.append(('training_error', type(error).__name__))


class BrokenHandler(EventHandler):

    def on_generation_complete(self, **kwargs):
        raise RuntimeError("handler bug")


class PassThroughSpeciation(Speciation):
    """Leaves species and offspring counts untouched."""

    def speciate(self, population):
        pass


def clustered_engine(operators, seed=3):
    """Two tight clusters of ten equally scored genomes each."""
    rnd = np.random.default_rng(seed)
    population = Population(max_population_size=20)
    species = population.create_species()
    for center in (0.0, 10.0):
        for _ in range(10):
            species.add(DoubleArrayGenome(data=center + rnd.uniform(-0.05, 0.05, 4)))
    engine = EvolutionEngine(population, CallableScoreFunction(lambda vector: 1.0), codec=ArrayCODEC(),
                             speciation=ArrayThresholdSpeciation(compatibility_threshold=1.0), seed=seed)
    for probability, operator in operators:
        engine.add_operation(probability, operator)
    return engine


class TestEngineConfiguration(unittest.TestCase):

    def test_defaults(self):
        engine = build_engine()

        self.assertEqual(engine.max_tries, 5)
        self.assertFalse(engine.should_ignore_exceptions)
        self.assertFalse(engine.validation_mode)
        self.assertEqual(engine.thread_count, 1)
        self.assertIsInstance(engine.selection, TournamentSelection)
        self.assertEqual(engine.selection.rounds, 4)
        self.assertIs(engine.state, EngineState.CREATED)
        self.assertIsInstance(engine.history, tools.Logbook)

    def test_rejects_invalid_settings(self):
        for evolution in ({'max_tries': 0}, {'elite_rate': 1.5}, {'thread_count': 0}):
            with self.subTest(evolution=evolution):
                with self.assertRaises(ConfigurationError):
                    build_engine(config={'evolution': evolution})

    def test_rejects_non_positive_operator_weight(self):
        engine = build_engine()
        with self.assertRaises(ConfigurationError):
            engine.add_operation(0.0, MutatePerturb())

    def test_handler_and_validator_types_are_checked(self):
        engine = build_engine()
        with self.assertRaises(TypeError):
            engine.add_handler(object())
        with self.assertRaises(TypeError):
            engine.add_validator(object())


class TestEngineLifecycle(unittest.TestCase):

    def test_iteration_requires_seeded_population(self):
        engine = EvolutionEngine(Population(max_population_size=5), CallableScoreFunction(sphere))
        engine.add_operation(1.0, MutatePerturb())

        with self.assertRaises(InitializationError):
            engine.iteration()
        self.assertIs(engine.state, EngineState.CREATED)
        self.assertTrue(issubclass(InitializationError, LifecycleError))

    def test_iteration_requires_operators(self):
        engine = build_engine(operators=[])
        with self.assertRaises(ConfigurationError):
            engine.iteration()

    def test_all_invalid_initial_scores(self):
        engine = build_engine(score=lambda vector: math.nan)
        with self.assertRaises(InitializationError):
            engine.iteration()

    def test_first_iteration_scores_and_starts(self):
        engine = build_engine()
        engine.iteration()

        self.assertIs(engine.state, EngineState.RUNNING)
        self.assertEqual(engine.current_iteration, 1)
        self.assertTrue(all(genome.is_scored for genome in engine.population.flatten()))
        self.assertEqual(engine.last_error, engine.best_genome.score)
        self.assertIs(engine.selection.engine, engine)

    def test_iteration_after_finish_raises(self):
        engine = build_engine()
        engine.iteration()
        engine.finish_training()

        self.assertIs(engine.state, EngineState.FINISHED)
        with self.assertRaises(LifecycleError):
            engine.iteration()
        self.assertEqual(engine.current_iteration, 1)

    def test_finish_before_start(self):
        engine = build_engine()
        engine.finish_training()
        with self.assertRaises(LifecycleError):
            engine.iteration()


class TestGenerationInvariants(unittest.TestCase):

    def test_population_never_exceeds_limit(self):
        engine = build_engine(size=15)
        for expected in range(1, 11):
            engine.iteration()
            self.assertLessEqual(engine.population.size(), 15)
            self.assertEqual(engine.current_iteration, expected)
            engine.population.check_invariants()

    def test_best_never_regresses_when_maximizing(self):
        engine = build_engine()
        for _ in range(15):
            engine.iteration()

        history = best_history(engine)
        self.assertEqual(len(history), 16)
        self.assertTrue(all(later >= earlier for earlier, later in zip(history, history[1:])))
        self.assertGreater(history[-1], history[0])

    def test_best_never_regresses_when_minimizing(self):
        engine = build_engine(minimize=True)
        for _ in range(15):
            engine.iteration()

        history = best_history(engine)
        self.assertTrue(all(later <= earlier for earlier, later in zip(history, history[1:])))
        self.assertLess(history[-1], history[0])

    def test_best_genome_matches_population(self):
        engine = build_engine()
        for _ in range(3):
            engine.iteration()

        best_score = max(genome.score for genome in engine.population.flatten())
        self.assertEqual(engine.best_genome.score, best_score)
        self.assertIn(engine.best_genome, engine.population.flatten())

    def test_threshold_speciation_run(self):
        engine = build_engine(speciation=ArrayThresholdSpeciation(compatibility_threshold=1.0),
                              max_species=4, config={'evolution': {'validation_mode': True}})
        for _ in range(8):
            engine.iteration()
            self.assertLessEqual(engine.population.size(), 20)
            self.assertGreaterEqual(len(engine.population.species), 1)

        history = best_history(engine)
        self.assertTrue(all(later >= earlier for earlier, later in zip(history, history[1:])))

    def test_two_child_operator_keeps_species_allocation(self):
        engine = clustered_engine([(1.0, Splice(cut_length=1))])
        engine.iteration()

        population = engine.population
        self.assertEqual(len(population.species), 2)
        self.assertEqual([len(species) for species in population.species], [10, 10])
        self.assertEqual(population.size(), 20)

    def test_each_child_counts_against_the_budget(self):
        engine = clustered_engine([(1.0, Splice(cut_length=1))])
        engine._pre_iteration()
        allocated = {species.species_id: species.offspring_count for species in engine.population.species}

        new_population, offspring = engine._breed()

        produced = {species_id: 0 for species_id in allocated}
        for genome in new_population:
            produced[genome.species_id] += 1
        self.assertEqual(allocated, {species_id: 10 for species_id in allocated})
        self.assertEqual(produced, allocated)
        self.assertTrue(all(genome.operation == 'splice' for genome in offspring))

    def test_speciation_without_offspring_counts(self):
        engine = build_engine(operators=[(1.0, MutatePerturb(0.2))], speciation=PassThroughSpeciation())
        for _ in range(3):
            engine.iteration()
            self.assertEqual(engine.population.size(), 20)

        self.assertEqual(engine.population.species[0].offspring_count, 0)

    def test_unassigned_slots_follow_member_count(self):
        large, small = Species(1), Species(2)
        for _ in range(30):
            large.add(DoubleArrayGenome(data=[0.0]))
        for _ in range(10):
            small.add(DoubleArrayGenome(data=[1.0]))

        self.assertEqual(EvolutionEngine._offspring_budgets([large, small], 20), [15, 5])

        large.offspring_count, small.offspring_count = 12, 2
        self.assertEqual(EvolutionEngine._offspring_budgets([large, small], 20), [17, 3])

        large.offspring_count, small.offspring_count = 4, 16
        self.assertEqual(EvolutionEngine._offspring_budgets([large, small], 20), [4, 16])

    def test_offspring_record_genealogy(self):
        engine = build_engine(operators=[(1.0, MutatePerturb(0.1))])
        engine.iteration()

        newborn = [g for g in engine.population.flatten() if g.birth_generation == 1]
        self.assertTrue(newborn)
        self.assertTrue(all(g.operation == 'mutate_perturb' for g in newborn))
        self.assertTrue(all(len(g.parents) == 1 for g in newborn))


class TestFailurePolicy(unittest.TestCase):

    def test_exhausted_retries_fail_without_partial_commit(self):
        toggle = ToggleOperator()
        engine = build_engine(operators=[(1.0, toggle)], config={'evolution': {'max_tries': 3}})
        recorder = RecordingHandler()
        engine.add_handler(recorder)
        engine.iteration()

        before = [(genome, genome.species_id) for genome in engine.population.flatten()]
        best = engine.best_genome
        records = len(engine.history)
        toggle.error = OffspringInvalid("never valid")
        toggle.calls = 0

        with self.assertRaises(TrainingFailure):
            engine.iteration()

        self.assertEqual(toggle.calls, 3)
        self.assertEqual([(genome, genome.species_id) for genome in engine.population.flatten()], before)
        self.assertIs(engine.best_genome, best)
        self.assertEqual(engine.current_iteration, 1)
        self.assertEqual(len(engine.history), records)
        self.assertEqual(recorder.events[-1], ('training_error', 'TrainingFailure'))

        toggle.error = None
        engine.iteration()
        self.assertEqual(engine.current_iteration, 2)

    def test_exhausted_retries_fall_back_to_clone(self):
        toggle = ToggleOperator(error=OffspringInvalid("never valid"))
        engine = build_engine(operators=[(1.0, toggle)],
                              config={'evolution': {'max_tries': 2, 'should_ignore_exceptions': True}})
        engine.iteration()

        newborn = [g for g in engine.population.flatten() if g.birth_generation == 1]
        self.assertTrue(newborn)
        self.assertTrue(all(g.operation == 'reproduction' for g in newborn))
        self.assertEqual(engine.population.size(), 20)

    def test_fatal_operator_error_is_not_retried(self):
        toggle = ToggleOperator(error=KeyError("bug"))
        engine = build_engine(operators=[(1.0, toggle)])

        with self.assertRaises(TrainingFailure) as context:
            engine.iteration()

        self.assertEqual(toggle.calls, 1)
        self.assertIsInstance(context.exception.__cause__, KeyError)

    def test_score_function_failure_aborts_generation(self):
        state = {'fail': False}

        def flaky(vector):
            if state['fail']:
                raise ValueError("score backend down")
            return sphere(vector)

        engine = build_engine(score=flaky)
        engine.iteration()
        before = engine.population.flatten()
        state['fail'] = True

        with self.assertRaises(TrainingFailure) as context:
            engine.iteration()

        self.assertIsInstance(context.exception.__cause__, ValueError)
        self.assertEqual(engine.population.flatten(), before)
        self.assertEqual(engine.current_iteration, 1)

    def test_oversized_offspring_are_rejected(self):
        engine = build_engine(operators=[(1.0, GrowOperator())], max_individual_size=4,
                              config={'evolution': {'should_ignore_exceptions': True}})
        for _ in range(3):
            engine.iteration()

        self.assertTrue(all(genome.size() <= 4 for genome in engine.population.flatten()))

    def test_crossover_on_single_member_species_falls_back(self):
        population = Population(max_population_size=3)
        population.seed(DoubleArrayGenomeFactory(4), np.random.default_rng(0), count=1)
        engine = EvolutionEngine(population, CallableScoreFunction(sphere), codec=ArrayCODEC(),
                                 config={'evolution': {'should_ignore_exceptions': True}})
        engine.add_operation(1.0, Splice())

        engine.iteration()

        self.assertEqual(population.size(), 3)
        self.assertTrue(all(g.operation in ('initialization', 'reproduction') for g in population.flatten()))

    def test_crossover_on_single_member_species_fails_without_ignore(self):
        population = Population(max_population_size=3)
        population.seed(DoubleArrayGenomeFactory(4), np.random.default_rng(0), count=1)
        engine = EvolutionEngine(population, CallableScoreFunction(sphere), codec=ArrayCODEC())
        engine.add_operation(1.0, Splice())

        with self.assertRaises(TrainingFailure):
            engine.iteration()
        self.assertEqual(population.size(), 1)


class TestValidationMode(unittest.TestCase):

    def test_validators_run_only_in_validation_mode(self):
        validator = CountingValidator()
        engine = build_engine()
        engine.add_validator(validator)
        engine.iteration()
        self.assertEqual(validator.calls, 0)

        validator = CountingValidator()
        engine = build_engine(config={'evolution': {'validation_mode': True}})
        engine.add_validator(validator)
        engine.iteration()
        self.assertGreater(validator.calls, 0)

    def test_rejected_offspring_consume_retries(self):
        validator = RejectAllValidator()
        engine = build_engine(operators=[(1.0, MutatePerturb())],
                              config={'evolution': {'validation_mode': True, 'max_tries': 2,
                                                    'should_ignore_exceptions': True}})
        engine.add_validator(validator)
        engine.iteration()

        newborn = [g for g in engine.population.flatten() if g.birth_generation == 1]
        self.assertTrue(all(g.operation == 'reproduction' for g in newborn))
        self.assertEqual(validator.calls, 2 * len(newborn))

    def test_shipped_validators(self):
        engine = build_engine(max_individual_size=4)

        MaxSizeValidator().validate(DoubleArrayGenome(data=np.zeros(4)), engine)
        with self.assertRaises(OffspringInvalid):
            MaxSizeValidator().validate(DoubleArrayGenome(data=np.zeros(5)), engine)

        FiniteArrayValidator().validate(DoubleArrayGenome(data=[1.0, 2.0]), engine)
        with self.assertRaises(OffspringInvalid):
            FiniteArrayValidator().validate(DoubleArrayGenome(data=[1.0, np.nan]), engine)

    def test_mutating_strategies_mid_generation_is_refused(self):
        refused = []

        class Meddler:
            engine = None

            def __call__(self, vector):
                try:
                    self.engine.set_selection(TournamentSelection(2))
                except LifecycleError as e:
                    refused.append(e)
                return sphere(vector)

        meddler = Meddler()
        engine = build_engine(score=meddler)
        meddler.engine = engine
        engine.iteration()

        self.assertTrue(refused)
        self.assertEqual(engine.selection.rounds, 4)
        engine.set_selection(TournamentSelection(2))
        self.assertEqual(engine.selection.rounds, 2)


class TestReproducibility(unittest.TestCase):

    def _run(self, **kwargs):
        engine = build_engine(seed=9, **kwargs)
        for _ in range(6):
            engine.iteration()
        engine.finish_training()
        return best_history(engine), engine.best_genome.data.copy()

    def test_same_seed_same_run(self):
        history1, best1 = self._run()
        history2, best2 = self._run()

        self.assertEqual(history1, history2)
        np.testing.assert_array_equal(best1, best2)

    def test_thread_count_does_not_change_result(self):
        history1, best1 = self._run()
        history4, best4 = self._run(config={'evolution': {'thread_count': 4}})

        self.assertEqual(history1, history4)
        np.testing.assert_array_equal(best1, best4)


class TestEventsAndEvolve(unittest.TestCase):

    def test_event_order(self):
        engine = build_engine()
        recorder = RecordingHandler()
        engine.add_handler(recorder)

        engine.iteration()
        engine.iteration()

        self.assertEqual(recorder.events, ['training_start', ('generation_complete', 1),
                                           ('generation_complete', 2)])

    def test_training_start_fires_once_after_failed_first_generation(self):
        toggle = ToggleOperator(error=OffspringInvalid("never valid"))
        engine = build_engine(operators=[(1.0, toggle)])
        recorder = RecordingHandler()
        engine.add_handler(recorder)

        with self.assertRaises(TrainingFailure):
            engine.iteration()
        self.assertIs(engine.state, EngineState.CREATED)
        self.assertNotIn('training_start', recorder.events)

        toggle.error = None
        engine.iteration()
        engine.iteration()

        self.assertEqual(recorder.events, [('training_error', 'TrainingFailure'), 'training_start',
                                           ('generation_complete', 1), ('generation_complete', 2)])

    def test_handler_errors_do_not_abort_training(self):
        engine = build_engine()
        engine.add_handler(BrokenHandler())

        engine.iteration()

        self.assertEqual(engine.current_iteration, 1)

    def test_evolve_returns_result(self):
        engine = build_engine()
        engine.add_handler(LoggingHandler(interval=2))
        recorder = RecordingHandler()
        engine.add_handler(recorder)

        result = engine.evolve(5)

        self.assertIsInstance(result, EvolutionResult)
        self.assertEqual(result.iterations_completed, 5)
        self.assertFalse(result.stopped_early)
        self.assertEqual(result.best_score, engine.best_genome.score)
        self.assertEqual(len(result.history), 6)
        self.assertEqual(result.total_evaluations, engine.total_evaluations)
        self.assertGreater(result.improvement_rate, 0.0)
        self.assertEqual(recorder.events[-1], 'training_complete')

        frame = result.to_dataframe()
        self.assertIsInstance(frame, pd.DataFrame)
        self.assertEqual(list(frame.index), [0, 1, 2, 3, 4, 5])
        self.assertIn('avg', frame.columns)

        summary = result.get_summary()
        self.assertEqual(summary['population_size'], engine.population.size())
        self.assertEqual(result.to_dict()['best_genome']['id'], engine.best_genome.id)

    def test_evolve_stops_early(self):
        engine = build_engine(score=lambda vector: 1.0)
        engine.add_handler(EarlyStoppingHandler(patience=2))

        result = engine.evolve(20)

        self.assertTrue(result.stopped_early)
        self.assertEqual(result.iterations_completed, 3)

    def test_evolve_rejects_zero_generations(self):
        with self.assertRaises(ConfigurationError):
            build_engine().evolve(0)

    def test_status(self):
        engine = build_engine()
        engine.iteration()
        status = engine.get_status()

        self.assertEqual(status['state'], 'running')
        self.assertEqual(status['iteration'], 1)
        self.assertEqual(status['population_size'], engine.population.size())


if __name__ == '__main__':
    unittest.main()
