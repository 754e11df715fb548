"""
演化引擎核心類

這個模組實現了演化引擎的核心邏輯：每次呼叫 ``iteration()`` 執行一個完整
世代（選擇、變異、評分、分數調整、插入、物種劃分、最佳基因組更新），並
負責協調選擇策略、評分函數、分數調整器與事件處理器。
"""

from typing import Dict, List, Any, Optional
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from operator import attrgetter
import enum
import logging
import math
import time
import uuid

import numpy as np
from deap import tools
from tqdm import trange

from .comparator import best_comparator, selection_comparator
from .errors import (ConfigurationError, EvolutionError, InitializationError, LifecycleError,
                     OffspringInvalid, TrainingFailure)
from .genetic.codec import GenomeAsPhenomeCODEC
from .handlers.base import EventHandler
from .population import Population
from .result import EvolutionResult
from .strategies.operation import OperationList, OperationResult, OperationStatus
from .strategies.score import ScoreContext
from .strategies.selection import TournamentSelection
from .strategies.speciation import SingleSpeciation
from .strategies.validation import GenomeValidator

logger = logging.getLogger(__name__)

# attempts at drawing a second parent distinct from the first
PARENT_DRAW_ATTEMPTS = 5
# species need more members than this before elites are carried over
ELITE_MIN_SPECIES_SIZE = 5


class EngineState(enum.Enum):
    CREATED = 'created'
    RUNNING = 'running'
    FINISHED = 'finished'


class EvolutionEngine:
    """
    演化引擎

    這個類是演化計算的核心，負責：
    1. 管理加權演化操作、分數調整器與驗證器
    2. 以選擇策略挑選親代並產生子代（有界重試）
    3. 評分、分數調整、插入族群並進行物種劃分
    4. 追蹤最佳基因組與每世代統計
    5. 保證世代全有或全無：失敗時族群維持上一個已提交的狀態

    The engine is not reentrant. ``iteration()`` must not run concurrently
    with itself or with code mutating the population.
    """

    def __init__(self, population: Population, score_function, codec=None, selection=None,
                 speciation=None, seed: Optional[int] = None, config: Optional[Dict[str, Any]] = None):
        """
        初始化演化引擎

        Args:
            population: seeded population
            score_function: object implementing ``calculate_score`` and ``should_minimize``
            codec: genome to phenotype CODEC, defaults to the identity CODEC
            selection: selection strategy, defaults to a 4 round tournament
            speciation: speciation strategy, defaults to a single species
            seed: seed of the numpy random generator
            config: configuration dict, the ``evolution`` section is read here
        """
        self.config = config or {}
        self.engine_id = str(uuid.uuid4())[:8]
        self.created_at = datetime.now()

        self.population = population
        self.score_function = score_function
        self.codec = codec if codec is not None else GenomeAsPhenomeCODEC()
        self.seed = seed
        self.random = np.random.default_rng(seed)

        minimize = score_function.should_minimize()
        self.best_comparator = best_comparator(minimize)
        self.selection_comparator = selection_comparator(minimize)

        # 組件容器
        self.operators = OperationList()
        self.score_adjusters: List = []
        self.validators: List[GenomeValidator] = []
        self.handlers: List[EventHandler] = []
        self.selection = None
        self.speciation = None
        self.set_selection(selection if selection is not None else TournamentSelection(4))
        self.set_speciation(speciation if speciation is not None else SingleSpeciation())

        # 演化參數
        evolution = self.config.get('evolution', {})
        self.max_tries = evolution.get('max_tries', 5)
        self.should_ignore_exceptions = evolution.get('should_ignore_exceptions', False)
        self.validation_mode = evolution.get('validation_mode', False)
        self.elite_rate = evolution.get('elite_rate', 0.3)
        self.thread_count = evolution.get('thread_count', 1)
        self._validate_parameters()

        # 訓練狀態
        self.state = EngineState.CREATED
        self.current_iteration = 0
        self.best_genome = None
        self.total_evaluations = 0
        self.should_stop = False
        self._in_generation = False
        self._executor: Optional[ThreadPoolExecutor] = None

        self.statistics = tools.Statistics(key=attrgetter('score'))
        self.statistics.register('avg', np.mean)
        self.statistics.register('std', np.std)
        self.statistics.register('min', np.min)
        self.statistics.register('max', np.max)
        self.history = tools.Logbook()
        self.history.header = ['iteration', 'species', 'size', 'best', 'avg', 'std', 'min', 'max']

        logger.info(f"演化引擎已創建 (ID: {self.engine_id})")
        logger.info(f"配置: 族群上限={population.max_population_size}, "
                    f"{'minimize' if minimize else 'maximize'}, seed={seed}")

    def _validate_parameters(self):
        if not isinstance(self.max_tries, int) or self.max_tries < 1:
            raise ConfigurationError(f"max_tries must be an integer >= 1, got {self.max_tries}")
        if not 0.0 <= self.elite_rate <= 1.0:
            raise ConfigurationError(f"elite_rate must be in [0, 1], got {self.elite_rate}")
        if not isinstance(self.thread_count, int) or self.thread_count < 1:
            raise ConfigurationError(f"thread_count must be an integer >= 1, got {self.thread_count}")

    # ------------------------------------------------------------------
    # registration

    def add_operation(self, probability: float, operator):
        """
        Register a variation operator

        Args:
            probability: relative weight, must be > 0
            operator: ``EvolutionaryOperator`` instance
        """
        self.operators.add(probability, operator)
        operator.set_engine(self)

    def add_score_adjuster(self, adjuster):
        """Append a score adjuster. Adjusters run in registration order."""
        adjuster.set_engine(self)
        self.score_adjusters.append(adjuster)
        logger.debug(f"已添加分數調整器: {adjuster.__class__.__name__}")

    def add_validator(self, validator: GenomeValidator):
        if not isinstance(validator, GenomeValidator):
            raise TypeError(f"驗證器必須繼承自 GenomeValidator: {type(validator)}")
        self.validators.append(validator)

    def add_handler(self, handler: EventHandler):
        if not isinstance(handler, EventHandler):
            raise TypeError(f"處理器必須繼承自 EventHandler: {type(handler)}")
        self.handlers.append(handler)
        handler.set_engine(self)
        logger.debug(f"已添加事件處理器: {handler.__class__.__name__}")

    def set_selection(self, selection):
        self._check_not_in_generation('selection')
        selection.set_engine(self)
        self.selection = selection

    def set_speciation(self, speciation):
        self._check_not_in_generation('speciation')
        speciation.set_engine(self)
        self.speciation = speciation

    def set_best_comparator(self, comparator):
        self._check_not_in_generation('best comparator')
        self.best_comparator = comparator

    def set_selection_comparator(self, comparator):
        self._check_not_in_generation('selection comparator')
        self.selection_comparator = comparator

    def _check_not_in_generation(self, what: str):
        if getattr(self, '_in_generation', False):
            raise LifecycleError(f"cannot replace the {what} while a generation is running")

    # ------------------------------------------------------------------
    # accessors

    @property
    def iteration_count(self) -> int:
        return self.current_iteration

    @property
    def last_error(self) -> float:
        """Score of the best genome, to be minimized or maximized."""
        return self.best_genome.score if self.best_genome is not None else math.nan

    @property
    def max_individual_size(self) -> int:
        return self.population.max_individual_size

    # ------------------------------------------------------------------
    # scoring

    def calculate_score(self, genome):
        """
        Score a genome and run the adjuster pipeline

        Non-finite scores are replaced by the worst value for the direction.
        """
        phenotype = self.codec.decode(genome)
        score = self.score_function.calculate_score(phenotype)
        if score is None or not math.isfinite(score):
            score = self.best_comparator.worst_value()
        genome.score = float(score)
        self.calculate_score_adjustment(genome)

    def calculate_score_adjustment(self, genome):
        genome.adjusted_score = genome.score
        if not self.score_adjusters:
            return
        context = ScoreContext(species=self.population.species_for(genome),
                               comparator=self.selection_comparator,
                               iteration=self.current_iteration)
        for adjuster in self.score_adjusters:
            adjuster.apply(genome, context)

    def _score_genomes(self, genomes: List):
        if not genomes:
            return
        try:
            if self.thread_count > 1:
                if self._executor is None:
                    self._executor = ThreadPoolExecutor(max_workers=self.thread_count,
                                                        thread_name_prefix=f"evotrain-{self.engine_id}")
                list(self._executor.map(self.calculate_score, genomes))
            else:
                for genome in genomes:
                    self.calculate_score(genome)
        except EvolutionError:
            raise
        except Exception as e:
            raise TrainingFailure(f"score function failed: {e}") from e
        self.total_evaluations += len(genomes)

    # ------------------------------------------------------------------
    # generation

    def iteration(self):
        """
        Run exactly one generation

        Raises:
            LifecycleError: after ``finish_training()``
            InitializationError: if the population is empty
            TrainingFailure: if the generation cannot be completed
        """
        if self.state is EngineState.FINISHED:
            raise LifecycleError("training already finished; iteration() is no longer allowed")

        snapshot = self.population.snapshot()
        previous_state = self.state
        previous_best = self.best_genome
        previous_records = len(self.history)

        self._in_generation = True
        try:
            if self.state is EngineState.CREATED:
                self._pre_iteration()

            if not self.population.species or self.population.size() == 0:
                raise InitializationError("Population is empty, there are no species.")

            new_population, offspring = self._breed()
            self._score_genomes(offspring)

            self.population.replace_members(new_population)
            self.speciation.speciate(self.population)
            self.population.purge_invalid_genomes()
            if self.validation_mode:
                self.population.check_invariants()
            elif self.population.size() > self.population.max_population_size:
                raise TrainingFailure(f"population grew to {self.population.size()} genomes, "
                                      f"limit is {self.population.max_population_size}")
            best = self._find_best()
        except Exception as e:
            self.population.restore(snapshot)
            self.state = previous_state
            self.best_genome = previous_best
            del self.history[previous_records:]
            self._fire_event('training_error', engine=self, error=e)
            logger.error(f"❌ 第 {self.current_iteration + 1} 世代失敗: {e}")
            if isinstance(e, EvolutionError):
                raise
            raise TrainingFailure(f"generation {self.current_iteration + 1} failed: {e}") from e
        finally:
            self._in_generation = False

        self.best_genome = best
        self.current_iteration += 1
        self._record_generation_stats()

        if previous_state is EngineState.CREATED:
            self._fire_event('training_start', engine=self)

        self._fire_event('generation_complete',
                         iteration=self.current_iteration,
                         population=self.population,
                         best_genome=self.best_genome,
                         engine=self)
        logger.debug(f"   第 {self.current_iteration} 世代: best={self.last_error:.6f}, "
                     f"species={len(self.population.species)}, size={self.population.size()}")

    def _pre_iteration(self):
        """Score the seeded population and speciate it once."""
        if not self.population.species or self.population.size() == 0:
            raise InitializationError("Population must be seeded before training starts")
        if len(self.operators) == 0:
            raise ConfigurationError("no evolutionary operators registered")

        self.speciation.init(self)

        unscored = [genome for genome in self.population.flatten() if not genome.is_scored]
        logger.info(f"🎯 評估初始族群: {len(unscored)} genomes")
        self._score_genomes(unscored)

        self.speciation.speciate(self.population)
        self.population.purge_invalid_genomes()
        if self.population.size() == 0:
            raise InitializationError("no genome of the initial population has a valid score")

        self.best_genome = self._find_best()
        self.state = EngineState.RUNNING
        self._record_generation_stats()

    def _breed(self):
        """
        Build the next generation off to the side

        Returns:
            (new population, newly created genomes needing a score)
        """
        capacity = self.population.max_population_size
        new_population: List = []
        offspring: List = []
        seen = set()

        def add(genome) -> bool:
            if len(new_population) >= capacity:
                return False
            if self.validation_mode and id(genome) in seen:
                return True
            seen.add(id(genome))
            new_population.append(genome)
            return True

        species_list = list(self.population.species)
        budgets = self._offspring_budgets(species_list, capacity)

        if self.best_genome is not None:
            add(self.best_genome)
            for index, species in enumerate(species_list):
                if budgets[index] > 0 and any(member is self.best_genome for member in species.members):
                    budgets[index] -= 1
                    break

        for species, spawn in zip(species_list, budgets):
            if len(new_population) >= capacity:
                break
            members = species.members

            if len(members) > ELITE_MIN_SPECIES_SIZE:
                elite_count = min(spawn, int(round(self.elite_rate * len(members))))
                for genome in members[:elite_count]:
                    if genome is not self.best_genome:
                        spawn -= 1
                        add(genome)

            # multi-child operators count each child against the budget
            while spawn > 0 and len(new_population) < capacity:
                for child in self._spawn(species):
                    if spawn <= 0 or not add(child):
                        break
                    spawn -= 1
                    offspring.append(child)

        logger.debug(f"   產生 {len(offspring)} 個子代, 新族群 {len(new_population)} 個基因組")
        return new_population, offspring

    @staticmethod
    def _offspring_budgets(species_list: List, capacity: int) -> List[int]:
        """
        Genomes each species contributes to the next generation

        Starts from ``offspring_count``. Slots the speciation left unassigned
        are shared out by member count, floors plus largest remainders.
        """
        budgets = [max(0, species.offspring_count) for species in species_list]
        shortfall = capacity - sum(budgets)
        total_members = sum(len(species.members) for species in species_list)
        if shortfall <= 0 or total_members == 0:
            return budgets

        exact = [shortfall * len(species.members) / total_members for species in species_list]
        extra = [int(math.floor(value)) for value in exact]
        order = sorted(range(len(exact)), key=lambda i: extra[i] - exact[i])
        for i in order[:shortfall - sum(extra)]:
            extra[i] += 1
        return [budget + more for budget, more in zip(budgets, extra)]

    def _spawn(self, species) -> List:
        """Produce offspring for one slot with at most ``max_tries`` attempts."""
        rnd = self.random
        parents = None
        last_result = None

        for attempt in range(1, self.max_tries + 1):
            operator = self.operators.pick_max_parents(rnd, len(species.members))
            if operator is None:
                last_result = OperationResult(OperationStatus.INVALID, error=OffspringInvalid(
                    f"no operator works with {len(species.members)} member(s)"))
                parents = [self.selection.select_genome(rnd, species)]
                break

            parents = self._choose_parents(species, operator.parents_needed)
            if parents is None:
                last_result = OperationResult(OperationStatus.INVALID, error=OffspringInvalid(
                    "could not draw distinct parents"))
                continue

            result = OperationResult.attempt(operator, rnd, parents)
            if result.ok:
                result = self._check_offspring(result)
            if result.ok:
                for child in result.offspring:
                    child.species_id = parents[0].species_id
                    child.birth_generation = self.current_iteration + 1
                return result.offspring

            last_result = result
            if result.status is OperationStatus.FATAL and not self.should_ignore_exceptions:
                raise TrainingFailure(f"operator {operator.name} failed: {result.error}") from result.error
            logger.debug(f"   {operator.name} 第 {attempt}/{self.max_tries} 次嘗試失敗: {result.error}")

        if not self.should_ignore_exceptions:
            raise TrainingFailure(
                f"Could not perform a successful genetic operation after {self.max_tries} tries: "
                f"{last_result.error if last_result else 'unknown error'}")

        parent = parents[0] if parents else self.selection.select_genome(rnd, species)
        logger.warning(f"操作重試 {self.max_tries} 次失敗，複製親代 {parent.id[:8]}")
        clone = parent.clone()
        clone.species_id = parent.species_id
        clone.birth_generation = self.current_iteration + 1
        return [clone]

    def _choose_parents(self, species, needed: int) -> Optional[List]:
        rnd = self.random
        parents = [self.selection.select_genome(rnd, species)]
        for _ in range(needed - 1):
            candidate = self.selection.select_genome(rnd, species)
            attempts = PARENT_DRAW_ATTEMPTS
            while any(candidate is parent for parent in parents) and attempts > 0:
                candidate = self.selection.select_genome(rnd, species)
                attempts -= 1
            if any(candidate is parent for parent in parents):
                return None
            parents.append(candidate)
        return parents

    def _check_offspring(self, result: OperationResult) -> OperationResult:
        limit = self.population.max_individual_size
        for child in result.offspring:
            if limit and child.size() > limit:
                return OperationResult(OperationStatus.INVALID, error=OffspringInvalid(
                    f"genome size {child.size()} exceeds max_individual_size {limit}"))
            if self.validation_mode:
                for validator in self.validators:
                    try:
                        validator.validate(child, self)
                    except OffspringInvalid as e:
                        return OperationResult(OperationStatus.INVALID, error=e)
        return result

    def _find_best(self):
        """Best genome by the best comparator; ties keep the first in species order."""
        best = None
        for genome in self.population.flatten():
            if best is None or self.best_comparator.is_better_than(genome, best):
                best = genome
        return best

    def _record_generation_stats(self):
        genomes = [genome for genome in self.population.flatten() if math.isfinite(genome.score)]
        if not genomes:
            return
        record = self.statistics.compile(genomes)
        self.history.record(iteration=self.current_iteration,
                            species=len(self.population.species),
                            size=self.population.size(),
                            best=self.last_error,
                            **record)

    # ------------------------------------------------------------------
    # training loop

    def evolve(self, max_generations: int, show_progress: bool = False) -> EvolutionResult:
        """
        執行演化過程

        Args:
            max_generations: number of ``iteration()`` calls at most
            show_progress: show a tqdm progress bar

        Returns:
            演化結果
        """
        if max_generations < 1:
            raise ConfigurationError(f"max_generations must be >= 1, got {max_generations}")

        logger.info(f"🚀 開始演化過程 (引擎 ID: {self.engine_id})")
        start = time.time()
        self.should_stop = False
        stopped_early = False

        progress = trange(max_generations, desc="Evolution", unit="gen", disable=not show_progress)
        for _ in progress:
            if self.should_stop:
                stopped_early = True
                break
            self.iteration()
            if show_progress:
                progress.set_postfix(best=f"{self.last_error:.6f}")
        progress.close()
        stopped_early = stopped_early or self.should_stop

        result = self._create_result(time.time() - start, stopped_early)
        self._fire_event('training_complete', engine=self, result=result)
        logger.info(f"✅ 演化完成! 最終最佳分數: {self.last_error:.6f}")
        return result

    def _create_result(self, execution_time: float, stopped_early: bool) -> EvolutionResult:
        return EvolutionResult(
            engine_id=self.engine_id,
            config=self.config,
            best_genome=self.best_genome,
            final_population=self.population.flatten(),
            history=[dict(record) for record in self.history],
            iterations_completed=self.current_iteration,
            total_evaluations=self.total_evaluations,
            minimize=self.best_comparator.should_minimize(),
            species_count=len(self.population.species),
            execution_time=execution_time,
            stopped_early=stopped_early,
        )

    def stop(self):
        """Ask ``evolve()`` to stop before the next generation."""
        self.should_stop = True
        logger.info("收到停止信號")

    def finish_training(self):
        """Release the scoring pool. No further ``iteration()`` calls are allowed."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        self.state = EngineState.FINISHED
        logger.info(f"訓練結束 (引擎 ID: {self.engine_id}, iterations={self.current_iteration})")

    # ------------------------------------------------------------------
    # events

    def _fire_event(self, event_name: str, **kwargs):
        for handler in self.handlers:
            callback = getattr(handler, f'on_{event_name}', None)
            if callback is None:
                continue
            try:
                callback(**kwargs)
            except Exception:
                logger.exception(f"事件處理器 {handler.__class__.__name__} 處理 {event_name} 事件時出錯")

    def get_status(self) -> Dict[str, Any]:
        return {
            'engine_id': self.engine_id,
            'state': self.state.value,
            'iteration': self.current_iteration,
            'population_size': self.population.size(),
            'species': len(self.population.species),
            'best_score': self.last_error,
            'total_evaluations': self.total_evaluations,
            'created_at': self.created_at.isoformat()
        }
